from __future__ import annotations

from typing import Any, Mapping, Protocol

from cedu_assistant.models import CourseEntry, CourseListSnapshot, CourseStatus


class CourseListSource(Protocol):
    def course_list_present(self, timeout: float | None = None) -> bool: ...

    def course_rows(self) -> list[dict[str, Any]]: ...


def _to_seconds(raw: Any) -> int:
    try:
        value = int(float(raw))
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def derive_status(label: str | None, watched_seconds: int, total_seconds: int) -> CourseStatus:
    """First matching rule wins: explicit labels, then the watched counters."""
    text = label or ""
    if CourseStatus.COMPLETED.label in text:
        return CourseStatus.COMPLETED
    if CourseStatus.IN_PROGRESS.label in text:
        return CourseStatus.IN_PROGRESS
    if total_seconds > 0 and watched_seconds == total_seconds:
        return CourseStatus.COMPLETED
    if watched_seconds > 0:
        return CourseStatus.IN_PROGRESS
    return CourseStatus.NOT_STARTED


def parse_course_row(row: Mapping[str, Any]) -> CourseEntry:
    total = _to_seconds(row.get("totalcount"))
    watched = _to_seconds(row.get("secondslearned"))
    return CourseEntry(
        resource_id=str(row.get("resourceid") or ""),
        name=str(row.get("name") or "").strip(),
        status=derive_status(row.get("label"), watched, total),
        total_seconds=total,
        watched_seconds=watched,
    )


class PageInspector:
    """Read the course list from the live page; nothing is cached."""

    def __init__(self, page: CourseListSource, *, wait_timeout: float = 10.0) -> None:
        self._page = page
        self._wait_timeout = wait_timeout

    def snapshot(self, *, wait: bool = True) -> CourseListSnapshot:
        """Return the current course list.

        With ``wait`` the call blocks up to the bounded timeout for the list
        container; an empty snapshot means "not available yet", not "no
        courses".
        """
        if wait and not self._page.course_list_present(self._wait_timeout):
            return CourseListSnapshot()
        rows = self._page.course_rows()
        return CourseListSnapshot(tuple(parse_course_row(row) for row in rows))
