from .loop import IntervalLoop
from .time import (
    COUNTDOWN_EXPIRED_MARKERS,
    SYSTEM_CLOCK,
    Clock,
    countdown_seconds,
    format_clock_time,
    format_duration,
    is_countdown_expired,
    parse_duration,
    random_delay,
)

__all__ = [
    "COUNTDOWN_EXPIRED_MARKERS",
    "SYSTEM_CLOCK",
    "Clock",
    "IntervalLoop",
    "countdown_seconds",
    "format_clock_time",
    "format_duration",
    "is_countdown_expired",
    "parse_duration",
    "random_delay",
]
