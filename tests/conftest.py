from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from cedu_assistant.automation.portal import PortalStructureError, PortalUnavailableError
from cedu_assistant.services.notifier import Notifier, UiEvent


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 3, 1, 9, 0, 0)
        self.mono = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.mono

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        self.mono += seconds
        self.current += timedelta(seconds=seconds)


class FakePortalPage:
    """Scriptable stand-in for ``PortalPage`` that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.rows: list[dict] = []
        self.list_present = True
        self.qr_visible = False
        self.qr_images = ["qr-1"]
        self.countdown = "4分 59秒"
        self.captcha = "captcha-png"
        self.captcha_missing = False
        self.feedback = "登录成功"
        self.url = "http://www.sczjrcfw.cn/member/index/login?url="
        self.closed = False

    # login ------------------------------------------------------------
    @property
    def current_url(self) -> str:
        return self.url

    def open_login(self) -> None:
        self.calls.append(("open_login",))

    def captcha_base64(self) -> str:
        self.calls.append(("captcha_base64",))
        if self.captcha_missing:
            raise PortalStructureError("captcha missing")
        return self.captcha

    def fill_login_form(self, credentials) -> None:
        self.calls.append(("fill_login_form", credentials))

    def submit_login(self) -> None:
        self.calls.append(("submit_login",))

    def read_login_feedback(self) -> str:
        self.calls.append(("read_login_feedback",))
        return self.feedback

    def click(self, selector: str) -> None:
        self.calls.append(("click", selector))

    def wait_for_url(self, url: str) -> None:
        self.calls.append(("wait_for_url", url))

    # course list ------------------------------------------------------
    def course_list_present(self, timeout: float | None = None) -> bool:
        self.calls.append(("course_list_present", timeout))
        return self.list_present

    def course_rows(self) -> list[dict]:
        return [dict(row) for row in self.rows]

    # challenge --------------------------------------------------------
    def is_qr_code_visible(self) -> bool:
        return self.qr_visible

    def qr_code_base64(self) -> str:
        if not self.qr_visible:
            raise PortalUnavailableError("qr gone")
        return self.qr_images[0]

    def countdown_text(self) -> str:
        if not self.qr_visible:
            raise PortalUnavailableError("timer gone")
        return self.countdown

    def reload_qr_code(self) -> None:
        self.calls.append(("reload_qr_code",))
        if len(self.qr_images) > 1:
            self.qr_images.pop(0)

    def close(self) -> None:
        self.closed = True

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class EventRecorder:
    def __init__(self, notifier: Notifier) -> None:
        self.events: list[tuple[UiEvent, object]] = []
        for event in UiEvent:
            notifier.subscribe(event, lambda payload, event=event: self.events.append((event, payload)))

    def payloads(self, event: UiEvent) -> list:
        return [payload for kind, payload in self.events if kind is event]

    def logs(self) -> list[str]:
        return [message.text for message in self.payloads(UiEvent.LOG)]

    def clear(self) -> None:
        self.events.clear()


def course_row(resource_id: str, total: int, watched: int, label: str = "", name: str | None = None) -> dict:
    return {
        "resourceid": resource_id,
        "totalcount": str(total),
        "secondslearned": str(watched),
        "label": label,
        "name": name or f"课件{resource_id}",
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def page() -> FakePortalPage:
    return FakePortalPage()


@pytest.fixture
def notifier(clock) -> Notifier:
    return Notifier(clock=clock)


@pytest.fixture
def recorder(notifier) -> EventRecorder:
    return EventRecorder(notifier)


def answer_captchas(notifier: Notifier, submit, answers: list) -> list:
    """Submit the next scripted answer each time a captcha is shown.

    ``submit`` receives a ``Credentials`` (or ``None`` to cancel). Returns the
    list of answers still unused.
    """
    remaining = list(answers)

    def on_captcha(_image) -> None:
        if remaining:
            submit(remaining.pop(0))

    notifier.subscribe(UiEvent.CAPTCHA, on_captcha)
    return remaining
