from __future__ import annotations

import random
import re
import time
from datetime import datetime

COUNTDOWN_EXPIRED_MARKERS: tuple[str, ...] = ("0分0秒", "0分 0秒")

_COUNTDOWN_PATTERN = re.compile(r"(?:(\d+)\s*分)?\s*(\d+)\s*秒")


class Clock:
    """Wall/monotonic time source shared by the polling loops.

    Tests substitute a virtual clock with the same three methods so that
    cooldowns, finish-time estimates and jitter waits become deterministic.
    """

    def now(self) -> datetime:
        return datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


SYSTEM_CLOCK = Clock()


def format_duration(seconds: int | float) -> str:
    total = max(0, int(round(seconds or 0)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_duration(value: str | None) -> int:
    if not value:
        return 0
    try:
        parts = [int(part) for part in value.strip().split(":")]
    except ValueError:
        return 0
    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    if len(parts) == 2:
        return parts[0] * 60 + parts[1]
    return 0


def format_clock_time(moment: datetime) -> str:
    return moment.strftime("%H:%M:%S")


def countdown_seconds(text: str | None) -> int | None:
    """Convert a countdown label such as ``"1分 25秒"`` into seconds."""
    if not text:
        return None
    match = _COUNTDOWN_PATTERN.search(text)
    if match is None:
        return None
    minutes = int(match.group(1) or 0)
    return minutes * 60 + int(match.group(2))


def is_countdown_expired(text: str | None) -> bool:
    if not text:
        return False
    # Whole-label match: "10分0秒" ends with a marker but is not expired.
    return text.strip() in COUNTDOWN_EXPIRED_MARKERS


def random_delay(minimum: float = 3.0, maximum: float = 7.0, *, rng: random.Random | None = None) -> float:
    source = rng or random
    if maximum <= minimum:
        return max(0.0, minimum)
    return source.uniform(minimum, maximum)
