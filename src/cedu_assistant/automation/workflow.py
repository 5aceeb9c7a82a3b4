from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from cedu_assistant.automation import portal
from cedu_assistant.automation.portal import TRANSIENT_ERRORS, PortalStructureError
from cedu_assistant.models import Credentials
from cedu_assistant.services.notifier import Notifier
from cedu_assistant.utils.time import SYSTEM_CLOCK, Clock, random_delay

logger = logging.getLogger(__name__)


class LoginOutcome(str, Enum):
    SUCCESS = "success"
    USER_NOT_FOUND = "user_not_found"
    WRONG_PASSWORD = "wrong_password"
    WRONG_CAPTCHA = "wrong_captcha"
    UNKNOWN = "unknown"


FEEDBACK_OUTCOMES: dict[str, LoginOutcome] = {
    "登录成功": LoginOutcome.SUCCESS,
    "没有用户": LoginOutcome.USER_NOT_FOUND,
    "密码错误": LoginOutcome.WRONG_PASSWORD,
    "验证码错误": LoginOutcome.WRONG_CAPTCHA,
}

OUTCOME_MESSAGES: dict[LoginOutcome, str] = {
    LoginOutcome.SUCCESS: "登录成功！",
    LoginOutcome.USER_NOT_FOUND: "手机号输入错误，请重新输入。",
    LoginOutcome.WRONG_PASSWORD: "手机号或密码错误，请重新输入。",
    LoginOutcome.WRONG_CAPTCHA: "验证码错误，请重新输入。",
    LoginOutcome.UNKNOWN: "判定结果：登录失败或验证码错误，请重新输入。",
}


def classify_feedback(feedback: str | None, current_url: str | None = None) -> LoginOutcome:
    text = (feedback or "").strip()
    if text in FEEDBACK_OUTCOMES:
        return FEEDBACK_OUTCOMES[text]
    if current_url == portal.MEMBER_INDEX_URL:
        return LoginOutcome.SUCCESS
    return LoginOutcome.UNKNOWN


class LoginPage(Protocol):
    @property
    def current_url(self) -> str: ...

    def open_login(self) -> None: ...

    def captcha_base64(self) -> str: ...

    def fill_login_form(self, credentials: Credentials) -> None: ...

    def submit_login(self) -> None: ...

    def read_login_feedback(self) -> str: ...

    def click(self, selector: str) -> None: ...

    def wait_for_url(self, url: str) -> None: ...


@dataclass(frozen=True, slots=True)
class NavigationStep:
    message: str
    action: Callable[[LoginPage], None]
    jitter: bool = True


NAVIGATION_STEPS: tuple[NavigationStep, ...] = (
    NavigationStep('正在点击"我的继续教育"...', lambda page: page.click(portal.CONTINUE_EDU_MENU)),
    NavigationStep(
        "等待页面跳转到学员中心...",
        lambda page: page.wait_for_url(portal.STUDENT_CENTER_URL),
        jitter=False,
    ),
    NavigationStep("正在关闭小程序弹窗...", lambda page: page.click(portal.MINI_PROGRAM_POPUP_CLOSE)),
    NavigationStep('正在点击"我的学习"...', lambda page: page.click(portal.MY_STUDY_LINK)),
    NavigationStep('正在点击"开始学习"...', lambda page: page.click(portal.START_LEARNING_BUTTON)),
    NavigationStep('正在点击"我知道了"按钮...', lambda page: page.click(portal.I_KNOW_BUTTON)),
)


class AutomationDriver:
    """One-shot login and navigation script that hands off to the loops.

    Credentials arrive through ``credentials``; putting ``None`` on the
    queue cancels a pending wait.
    """

    def __init__(
        self,
        page: LoginPage,
        notifier: Notifier,
        credentials: "queue.Queue[Credentials | None]",
        *,
        on_course_page: Callable[[], None],
        clock: Clock = SYSTEM_CLOCK,
        max_attempts: int = 20,
        jitter: tuple[float, float] = (3.0, 7.0),
        steps: tuple[NavigationStep, ...] = NAVIGATION_STEPS,
    ) -> None:
        self._page = page
        self._notifier = notifier
        self._credentials = credentials
        self._on_course_page = on_course_page
        self._clock = clock
        self._max_attempts = max_attempts
        self._jitter = jitter
        self._steps = steps

    def run(self) -> LoginOutcome | None:
        """Loop login attempts until success, cancellation or the attempt cap."""
        outcome: LoginOutcome | None = None
        for attempt in range(1, self._max_attempts + 1):
            self._page.open_login()
            self._notifier.log("正在获取验证码...")
            try:
                captcha = self._page.captcha_base64()
            except PortalStructureError:
                logger.exception("Captcha image missing")
                self._notifier.log(
                    "未能找到验证码图片，网站可能修改HTML结构或网站未正常打开，请退出程序重新打开。",
                    "warning",
                )
                return None
            if self._discard_stale_credentials():
                logger.info("Login cancelled before a new captcha was shown")
                return None
            self._notifier.captcha(captcha)
            self._notifier.log("请输入注册手机号、密码和图形验证码。")

            credentials = self._credentials.get()
            if credentials is None:
                logger.info("Login cancelled while waiting for credentials")
                return None

            outcome = self._attempt_login(credentials)
            if outcome is LoginOutcome.SUCCESS:
                self._notifier.log(OUTCOME_MESSAGES[outcome], "success")
                self._notifier.set_send_enabled(False)
                self._enter_course_page()
                return outcome

            self._notifier.log(OUTCOME_MESSAGES[outcome], "warning")
            logger.info("Login attempt %d failed: %s", attempt, outcome.value)

        self._notifier.log(
            f"登录失败次数已达{self._max_attempts}次上限，请检查账号信息后重新打开程序。",
            "warning",
        )
        return outcome

    def _discard_stale_credentials(self) -> bool:
        """Drop submissions made against an older captcha; True if a cancel was queued."""
        cancelled = False
        while True:
            try:
                pending = self._credentials.get_nowait()
            except queue.Empty:
                return cancelled
            if pending is None:
                cancelled = True

    def _attempt_login(self, credentials: Credentials) -> LoginOutcome:
        self._page.fill_login_form(credentials)
        self._page.submit_login()
        self._notifier.log("正在登录...")
        feedback = self._page.read_login_feedback()
        return classify_feedback(feedback, self._page.current_url)

    def _enter_course_page(self) -> None:
        try:
            for step in self._steps:
                if step.jitter:
                    self._clock.sleep(random_delay(*self._jitter))
                self._notifier.log(step.message)
                step.action(self._page)
        except TRANSIENT_ERRORS as exc:
            logger.exception("Navigation to the course page failed")
            self._notifier.log(f"自动跳转到学习页面失败：{exc}，请退出程序重新打开。", "warning")
            return

        self._on_course_page()
