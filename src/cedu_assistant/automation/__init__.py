from .portal import (
	TRANSIENT_ERRORS,
	PortalPage,
	PortalStructureError,
	PortalUnavailableError,
)
from .chrome import ChromeAutomationError, ChromeLauncher
from .inspector import PageInspector, derive_status, parse_course_row
from .poller import ProgressPoller
from .guardian import CountdownWatcher, QRGuardian
from .workflow import (
	NAVIGATION_STEPS,
	AutomationDriver,
	LoginOutcome,
	NavigationStep,
	classify_feedback,
)

__all__ = [
	"AutomationDriver",
	"ChromeAutomationError",
	"ChromeLauncher",
	"CountdownWatcher",
	"LoginOutcome",
	"NAVIGATION_STEPS",
	"NavigationStep",
	"PageInspector",
	"PortalPage",
	"PortalStructureError",
	"PortalUnavailableError",
	"ProgressPoller",
	"QRGuardian",
	"TRANSIENT_ERRORS",
	"classify_feedback",
	"derive_status",
	"parse_course_row",
]
