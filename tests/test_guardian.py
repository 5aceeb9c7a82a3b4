import threading

import pytest
from selenium.common.exceptions import WebDriverException

from cedu_assistant.automation.guardian import CountdownWatcher, QRGuardian
from cedu_assistant.automation.inspector import PageInspector
from cedu_assistant.automation.portal import PortalUnavailableError
from cedu_assistant.models import SessionState
from cedu_assistant.services.notifier import QR_SUCCESS_SENTINEL, UiEvent

from conftest import course_row


@pytest.fixture
def state():
    state = SessionState()
    state.track("a")
    return state


@pytest.fixture
def guardian(page, notifier, state, clock):
    guardian = QRGuardian(
        page,
        PageInspector(page),
        notifier,
        state,
        clock=clock,
        interval=60,
        hide_delay=3,
        refresh_cooldown=2,
    )
    yield guardian
    guardian.stop()
    guardian.countdown.stop()


def test_challenge_appearance_shows_window_and_qr(guardian, page, recorder, state):
    page.qr_visible = True

    guardian.tick()

    assert state.qr_challenge_visible
    assert recorder.payloads(UiEvent.WINDOW_SHOW) == [None]
    assert recorder.payloads(UiEvent.QR_IMAGE) == ["qr-1"]
    assert guardian.countdown.is_running


def test_challenge_clear_pushes_success_and_hides_after_delay(guardian, page, recorder, clock):
    page.rows = [course_row("a", 600, 200)]
    page.qr_visible = True
    guardian.tick()
    page.qr_visible = False

    guardian.tick()

    assert recorder.payloads(UiEvent.QR_TIMER) == [QR_SUCCESS_SENTINEL]
    assert not guardian.countdown.is_running
    (progress,) = recorder.payloads(UiEvent.CURRENT_PROGRESS)
    assert progress.watched_seconds == 200
    assert guardian.hide_pending
    assert recorder.payloads(UiEvent.WINDOW_HIDE) == []

    clock.advance(2)
    guardian.tick()
    assert recorder.payloads(UiEvent.WINDOW_HIDE) == []

    clock.advance(1)
    guardian.tick()
    assert recorder.payloads(UiEvent.WINDOW_HIDE) == [None]
    assert not guardian.hide_pending


def test_pending_hide_is_cancelled_when_challenge_returns(guardian, page, recorder, clock):
    page.qr_visible = True
    guardian.tick()
    page.qr_visible = False
    guardian.tick()

    clock.advance(1)
    page.qr_visible = True
    guardian.tick()
    clock.advance(5)
    guardian.tick()

    assert not guardian.hide_pending
    assert recorder.payloads(UiEvent.WINDOW_HIDE) == []
    assert len(recorder.payloads(UiEvent.WINDOW_SHOW)) == 2


def test_no_events_while_idle(guardian, recorder):
    guardian.tick()
    guardian.tick()

    assert recorder.events == []


def test_countdown_pushes_only_on_change(page, notifier, recorder, clock):
    page.qr_visible = True
    watcher = CountdownWatcher(page, notifier, clock=clock, interval=60)

    watcher.tick()
    watcher.tick()
    page.countdown = "4分 58秒"
    watcher.tick()

    assert recorder.payloads(UiEvent.QR_TIMER) == ["4分 59秒", "4分 58秒"]


@pytest.mark.parametrize("expired", ["0分0秒", "0分 0秒"])
def test_expired_countdown_refreshes_once_within_cooldown(page, notifier, recorder, clock, expired):
    page.qr_visible = True
    page.qr_images = ["qr-1", "qr-2"]
    page.countdown = expired
    watcher = CountdownWatcher(page, notifier, clock=clock, interval=60, refresh_cooldown=2)

    watcher.tick()
    watcher.tick()

    assert page.count("reload_qr_code") == 1
    assert recorder.payloads(UiEvent.QR_IMAGE) == ["qr-2"]
    assert "二维码已过期，正在自动刷新..." in recorder.logs()
    assert clock.sleeps == [1.0]

    # cooldown was set when the refresh fired; the 1 s settle already ate half of it
    clock.advance(1)
    watcher.tick()
    assert page.count("reload_qr_code") == 2


@pytest.mark.parametrize("live", ["10分0秒", "20分 0秒", "30分0秒"])
def test_whole_minute_countdown_is_not_treated_as_expired(page, notifier, recorder, clock, live):
    page.qr_visible = True
    page.countdown = live
    watcher = CountdownWatcher(page, notifier, clock=clock, interval=60)

    watcher.tick()

    assert page.count("reload_qr_code") == 0
    assert recorder.payloads(UiEvent.QR_TIMER) == [live]
    assert "二维码已过期，正在自动刷新..." not in recorder.logs()


def test_transient_tick_errors_are_retried_without_restart(page, notifier, recorder, state, clock):
    guardian = QRGuardian(
        page,
        PageInspector(page),
        notifier,
        state,
        clock=clock,
        interval=0,
        error_delay=0,
        restart_delay=0,
        max_restarts=1,
    )
    stop_event = threading.Event()
    ticks = []

    def flaky():
        ticks.append(1)
        if len(ticks) == 1:
            raise PortalUnavailableError("popup re-rendering")
        if len(ticks) == 2:
            raise WebDriverException("stale element")
        stop_event.set()

    guardian.tick = flaky

    guardian._supervise(stop_event)

    assert len(ticks) == 3
    assert guardian._restart_count == 0
    assert recorder.payloads(UiEvent.LOG) == []


def test_countdown_tolerates_missing_timer(page, notifier, recorder, clock):
    page.qr_visible = False
    watcher = CountdownWatcher(page, notifier, clock=clock, interval=60)

    watcher.tick()

    assert recorder.events == []


def test_crashing_guardian_restarts_a_bounded_number_of_times(page, notifier, recorder, state, clock):
    guardian = QRGuardian(
        page,
        PageInspector(page),
        notifier,
        state,
        clock=clock,
        interval=0,
        restart_delay=0,
        max_restarts=3,
    )
    ticks = []

    def crash():
        ticks.append(1)
        raise ValueError("boom")

    guardian.tick = crash

    guardian._supervise(threading.Event())

    assert len(ticks) == 4
    warnings = [message for message in recorder.payloads(UiEvent.LOG) if message.tone == "warning"]
    assert len(warnings) == 4
    assert "已停止" in warnings[-1].text


def test_stop_event_ends_supervision_without_ticking(guardian, page):
    stop_event = threading.Event()
    stop_event.set()

    guardian._supervise(stop_event)

    assert not page.calls
