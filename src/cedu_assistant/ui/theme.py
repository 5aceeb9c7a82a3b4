from __future__ import annotations

from cedu_assistant.models import CourseStatus

# Surfaces
APP_BG = "#F5F6F8"
PANEL_BG = "#FFFFFF"
PANEL_BORDER = "#E4E7EC"
ROW_DIVIDER = "#F0F1F3"

# Accent
ACCENT = "#1677FF"
ACCENT_HOVER = "#4096FF"
DANGER = "#D9363E"
DANGER_HOVER = "#E5484D"

# Text
TEXT = "#1F2329"
TEXT_MUTED = "#8A8F99"

# Status
SUCCESS = "#52C41A"
WARNING = "#FAAD14"
ERROR = "#F5222D"

LOG_TONE_COLORS = {
    "info": TEXT,
    "normal": TEXT,
    "success": SUCCESS,
    "warning": ERROR,
}

COURSE_STATUS_COLORS = {
    CourseStatus.COMPLETED: SUCCESS,
    CourseStatus.IN_PROGRESS: WARNING,
    CourseStatus.NOT_STARTED: TEXT_MUTED,
}
