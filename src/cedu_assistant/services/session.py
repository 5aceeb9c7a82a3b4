from __future__ import annotations

import logging
import queue
import re
import threading
from dataclasses import dataclass
from typing import Callable

from cedu_assistant.automation.chrome import ChromeAutomationError, ChromeLauncher
from cedu_assistant.automation.guardian import QRGuardian
from cedu_assistant.automation.inspector import PageInspector
from cedu_assistant.automation.poller import ProgressPoller
from cedu_assistant.automation.portal import TRANSIENT_ERRORS, PortalPage
from cedu_assistant.automation.workflow import AutomationDriver, LoginOutcome
from cedu_assistant.config.settings import Settings, get_settings
from cedu_assistant.config.user_settings_store import UserSettingsStore
from cedu_assistant.models import Credentials, SessionState, UserConfig
from cedu_assistant.services.notifier import Notifier
from cedu_assistant.utils.time import SYSTEM_CLOCK, Clock

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^1\d{10}$")

PageFactory = Callable[[UserConfig], PortalPage]


@dataclass(slots=True)
class RefreshResult:
    success: bool
    message: str

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def success_result(cls, message: str) -> "RefreshResult":
        return cls(True, message)

    @classmethod
    def failure_result(cls, message: str) -> "RefreshResult":
        return cls(False, message)


def validate_credentials(credentials: Credentials) -> dict[str, str]:
    """Return field -> error message for anything the form must fix first."""
    errors: dict[str, str] = {}
    if not PHONE_PATTERN.match(credentials.phone.strip()):
        errors["phone"] = "请输入正确的11位手机号（1开头）"
    if not credentials.password.strip():
        errors["password"] = "密码不能为空"
    return errors


class AutomationSession:
    """Owns one browser session and answers the window's commands.

    The poller and guardian share ``state``; the active course, challenge
    flag and last watched value all live there.
    """

    def __init__(
        self,
        notifier: Notifier,
        store: UserSettingsStore,
        *,
        settings: Settings | None = None,
        clock: Clock = SYSTEM_CLOCK,
        page_factory: PageFactory | None = None,
    ) -> None:
        self._notifier = notifier
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._page_factory = page_factory or self._launch_browser
        self._credentials: "queue.Queue[Credentials | None]" = queue.Queue()
        self._lock = threading.Lock()
        self._worker: threading.Thread | None = None

        self.state = SessionState()
        self._page: PortalPage | None = None
        self._inspector: PageInspector | None = None
        self._poller: ProgressPoller | None = None
        self._guardian: QRGuardian | None = None

    @property
    def is_started(self) -> bool:
        return self._worker is not None or self._page is not None

    @property
    def poller(self) -> ProgressPoller | None:
        return self._poller

    @property
    def guardian(self) -> QRGuardian | None:
        return self._guardian

    # ------------------------------------------------------------------
    # Commands from the window
    # ------------------------------------------------------------------
    def load_config(self) -> UserConfig:
        return self._store.load_user_config()

    def save_config(self, config: UserConfig) -> UserConfig:
        return self._store.save_user_config(config)

    def start(self, config: UserConfig) -> bool:
        """Save ``config`` and run the automation on a background thread."""
        with self._lock:
            if self.is_started:
                return False
            saved = self.save_config(config)
            self._worker = threading.Thread(
                target=self._run_guarded,
                args=(saved,),
                name="automation-driver",
                daemon=True,
            )
            self._worker.start()
            return True

    def submit_credentials(self, credentials: Credentials) -> dict[str, str]:
        errors = validate_credentials(credentials)
        if errors:
            return errors

        current = self.load_config()
        self.save_config(
            UserConfig(
                browser_executable_path=current.browser_executable_path,
                phone=credentials.phone.strip(),
                password=credentials.password.strip(),
                extra=current.extra,
            )
        )
        self._credentials.put(
            Credentials(credentials.phone.strip(), credentials.password.strip(), credentials.captcha.strip())
        )
        return {}

    def refresh_course_list(self) -> RefreshResult:
        inspector = self._inspector
        if inspector is None:
            return RefreshResult.failure_result("自动化尚未进入学习页面")

        try:
            snapshot = inspector.snapshot()
        except TRANSIENT_ERRORS as exc:
            logger.debug("Course list refresh failed", exc_info=True)
            return RefreshResult.failure_result(str(exc) or exc.__class__.__name__)

        if not snapshot:
            return RefreshResult.failure_result("未找到课件列表")

        learning = snapshot.first_in_progress()
        self._notifier.course_list(snapshot, learning.watched_seconds if learning else 0)
        self._notifier.log("课件列表已更新。")

        active = snapshot.find(self.state.active_course_id)
        if active is None or active.is_complete:
            target = snapshot.next_course()
            self.state.track(target.resource_id if target else None)

        if self._poller is not None:
            if self.state.active_course_id is None:
                self._poller.stop()
            else:
                self._poller.start()
        return RefreshResult.success_result("课件列表已更新")

    def shutdown(self) -> None:
        self._credentials.put(None)
        if self._poller is not None:
            self._poller.stop()
        if self._guardian is not None:
            self._guardian.stop()
        page = self._page
        self._page = None
        if page is not None:
            page.close()

    # ------------------------------------------------------------------
    # Automation thread
    # ------------------------------------------------------------------
    def run_automation(self, config: UserConfig) -> LoginOutcome | None:
        try:
            page = self._page_factory(config)
        except ChromeAutomationError as exc:
            logger.warning("Browser launch failed: %s", exc)
            self._notifier.log("浏览器启动失败，请检查路径！", "warning")
            with self._lock:
                self._worker = None
            return None

        self._page = page
        settings = self._settings
        self._inspector = PageInspector(page, wait_timeout=settings.selector_timeout)
        self._poller = ProgressPoller(
            self._inspector,
            self._notifier,
            self.state,
            clock=self._clock,
            interval=settings.poll_interval,
        )
        self._guardian = QRGuardian(
            page,
            self._inspector,
            self._notifier,
            self.state,
            clock=self._clock,
            interval=settings.poll_interval,
            error_delay=settings.guardian_error_delay,
            restart_delay=settings.guardian_restart_delay,
            max_restarts=settings.max_guardian_restarts,
            hide_delay=settings.qr_hide_delay,
            refresh_cooldown=settings.qr_refresh_cooldown,
        )
        self._notifier.log("已打开四川省八大员继续教育系统网页。")
        self._notifier.set_send_enabled(True)

        driver = AutomationDriver(
            page,
            self._notifier,
            self._credentials,
            on_course_page=self._enter_course_page,
            clock=self._clock,
            max_attempts=settings.max_login_attempts,
            jitter=(settings.jitter_min, settings.jitter_max),
        )
        return driver.run()

    def _run_guarded(self, config: UserConfig) -> None:
        try:
            self.run_automation(config)
        except Exception as exc:
            logger.exception("Automation stopped unexpectedly")
            self._notifier.log(f"自动化流程异常终止：{exc}", "warning")

    def _enter_course_page(self) -> None:
        result = self.refresh_course_list()
        if not result:
            self._notifier.log(f"课件列表更新失败：{result.message}", "warning")
        self._notifier.set_refresh_enabled(True)
        if self._guardian is not None:
            self._guardian.start()

    def _launch_browser(self, config: UserConfig) -> PortalPage:
        launcher = ChromeLauncher(
            headless=self._settings.headless,
            driver_path=self._settings.selenium_driver_path,
            selector_timeout=self._settings.selector_timeout,
            navigation_timeout=self._settings.navigation_timeout,
        )
        return launcher.launch(config.browser_executable_path or None)
