from .notifier import (
	QR_SUCCESS_SENTINEL,
	CourseListUpdate,
	LogMessage,
	Notifier,
	ProgressUpdate,
	UiEvent,
)

# ``session`` is imported by its full path: it depends on the automation
# package, which itself imports ``notifier`` from here.

__all__ = [
	"CourseListUpdate",
	"LogMessage",
	"Notifier",
	"ProgressUpdate",
	"QR_SUCCESS_SENTINEL",
	"UiEvent",
]
