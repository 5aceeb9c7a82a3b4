from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping

from cedu_assistant.utils.time import format_duration


class CourseStatus(str, Enum):
    NOT_STARTED = "未学习"
    IN_PROGRESS = "学习中"
    COMPLETED = "已学完"

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class CourseEntry:
    resource_id: str
    name: str
    status: CourseStatus
    total_seconds: int = 0
    watched_seconds: int = 0

    @property
    def duration(self) -> str:
        return format_duration(self.total_seconds)

    @property
    def remaining_seconds(self) -> int:
        return max(0, self.total_seconds - self.watched_seconds)

    @property
    def is_complete(self) -> bool:
        # Single completion predicate used by the poller, the session and the UI.
        if self.status is CourseStatus.COMPLETED:
            return True
        return self.total_seconds > 0 and self.watched_seconds >= self.total_seconds


@dataclass(frozen=True, slots=True)
class CourseListSnapshot:
    entries: tuple[CourseEntry, ...] = ()

    def __iter__(self) -> Iterator[CourseEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    @property
    def total_seconds(self) -> int:
        return sum(entry.total_seconds for entry in self.entries)

    @property
    def completed_seconds(self) -> int:
        return sum(entry.total_seconds for entry in self.entries if entry.status is CourseStatus.COMPLETED)

    @property
    def completed_count(self) -> int:
        return sum(1 for entry in self.entries if entry.status is CourseStatus.COMPLETED)

    def find(self, resource_id: str | None) -> CourseEntry | None:
        if resource_id is None:
            return None
        return next((entry for entry in self.entries if entry.resource_id == resource_id), None)

    def first_in_progress(self) -> CourseEntry | None:
        return next((entry for entry in self.entries if entry.status is CourseStatus.IN_PROGRESS), None)

    def next_course(self, exclude: str | None = None) -> CourseEntry | None:
        """Return the course to study next, skipping ``exclude``.

        An in-progress course wins; otherwise the first course that is not
        complete (not started or partially watched).
        """
        candidates = [entry for entry in self.entries if entry.resource_id != exclude and not entry.is_complete]
        in_progress = next((entry for entry in candidates if entry.status is CourseStatus.IN_PROGRESS), None)
        if in_progress is not None:
            return in_progress
        return candidates[0] if candidates else None

    def current_course(self) -> CourseEntry | None:
        return self.next_course() or (self.entries[0] if self.entries else None)

    def remaining_seconds(self, watched_seconds: int) -> int:
        return max(0, self.total_seconds - self.completed_seconds - watched_seconds)


@dataclass(slots=True)
class SessionState:
    active_course_id: str | None = None
    qr_challenge_visible: bool = False
    last_watched_seconds: int | None = None

    def track(self, resource_id: str | None) -> None:
        if resource_id != self.active_course_id:
            self.last_watched_seconds = None
        self.active_course_id = resource_id


@dataclass(frozen=True, slots=True)
class Credentials:
    phone: str
    password: str
    captcha: str


@dataclass(frozen=True, slots=True)
class UserConfig:
    browser_executable_path: str = ""
    phone: str = ""
    password: str = ""
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_record(cls, record: Mapping[str, Any] | None) -> "UserConfig":
        data = dict(record or {})
        return cls(
            browser_executable_path=str(data.pop("browserExecutablePath", "") or ""),
            phone=str(data.pop("phone", "") or ""),
            password=str(data.pop("password", "") or ""),
            extra=data,
        )

    def to_record(self) -> dict[str, Any]:
        record = dict(self.extra)
        record.update(
            {
                "browserExecutablePath": self.browser_executable_path,
                "phone": self.phone,
                "password": self.password,
            }
        )
        return record
