from .course import (
    CourseEntry,
    CourseListSnapshot,
    CourseStatus,
    Credentials,
    SessionState,
    UserConfig,
)

__all__ = [
    "CourseEntry",
    "CourseListSnapshot",
    "CourseStatus",
    "Credentials",
    "SessionState",
    "UserConfig",
]
