from __future__ import annotations

import logging
import threading
from typing import Protocol

from cedu_assistant.automation.inspector import PageInspector
from cedu_assistant.automation.portal import TRANSIENT_ERRORS
from cedu_assistant.models import SessionState
from cedu_assistant.services.notifier import QR_SUCCESS_SENTINEL, Notifier, ProgressUpdate
from cedu_assistant.utils.loop import IntervalLoop
from cedu_assistant.utils.time import SYSTEM_CLOCK, Clock, is_countdown_expired

logger = logging.getLogger(__name__)

QR_RELOAD_SETTLE_SECONDS = 1.0


class ChallengePage(Protocol):
    def is_qr_code_visible(self) -> bool: ...

    def qr_code_base64(self) -> str: ...

    def countdown_text(self) -> str: ...

    def reload_qr_code(self) -> None: ...


class CountdownWatcher:
    """Nested 1 s loop mirroring the challenge countdown while it is visible."""

    def __init__(
        self,
        page: ChallengePage,
        notifier: Notifier,
        *,
        clock: Clock = SYSTEM_CLOCK,
        interval: float = 1.0,
        refresh_cooldown: float = 2.0,
    ) -> None:
        self._page = page
        self._notifier = notifier
        self._clock = clock
        self._refresh_cooldown = refresh_cooldown
        self._last_text: str | None = None
        self._cooldown_until: float | None = None
        self._loop = IntervalLoop("qr-countdown", self.tick, interval)

    @property
    def is_running(self) -> bool:
        return self._loop.is_running

    def start(self) -> bool:
        self._last_text = None
        return self._loop.start()

    def stop(self) -> None:
        self._loop.stop()
        self._last_text = None

    def tick(self) -> None:
        try:
            text = self._page.countdown_text()
            if text != self._last_text:
                self._last_text = text
                self._notifier.qr_timer(text)
            if is_countdown_expired(text):
                self._refresh()
        except TRANSIENT_ERRORS:
            # Usually the popup is closing; the guardian stops us on its next tick.
            logger.debug("Countdown read failed", exc_info=True)

    def _refresh(self) -> bool:
        now = self._clock.monotonic()
        if self._cooldown_until is not None and now < self._cooldown_until:
            return False
        self._cooldown_until = now + self._refresh_cooldown

        self._notifier.log("二维码已过期，正在自动刷新...", "warning")
        self._page.reload_qr_code()
        self._clock.sleep(QR_RELOAD_SETTLE_SECONDS)
        self._notifier.qr_image(self._page.qr_code_base64())
        self._notifier.log("二维码已刷新，请微信扫码进行人脸识别。")
        return True


class QRGuardian:
    """Watch the face-verification popup: Idle <-> Challenged.

    Appearance shows the window, pushes the QR image and starts the
    countdown watcher. Disappearance is the success signal: the watcher
    stops, ``-1`` is pushed and the window is hidden after ``hide_delay``
    unless the challenge comes back first.
    """

    def __init__(
        self,
        page: ChallengePage,
        inspector: PageInspector,
        notifier: Notifier,
        state: SessionState,
        *,
        clock: Clock = SYSTEM_CLOCK,
        interval: float = 1.0,
        error_delay: float = 5.0,
        restart_delay: float = 5.0,
        max_restarts: int = 5,
        hide_delay: float = 3.0,
        refresh_cooldown: float = 2.0,
    ) -> None:
        self._page = page
        self._inspector = inspector
        self._notifier = notifier
        self._state = state
        self._clock = clock
        self._interval = interval
        self._error_delay = error_delay
        self._restart_delay = restart_delay
        self._max_restarts = max_restarts
        self._hide_delay = hide_delay
        self._hide_due: float | None = None
        self._restart_count = 0
        self.countdown = CountdownWatcher(
            page,
            notifier,
            clock=clock,
            interval=interval,
            refresh_cooldown=refresh_cooldown,
        )

        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def hide_pending(self) -> bool:
        return self._hide_due is not None

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._supervise,
                args=(self._stop_event,),
                name="qr-guardian",
                daemon=True,
            )
            self._running = True
            self._thread.start()
            return True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        self.countdown.stop()
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=1.5)

    def tick(self) -> None:
        visible = self._page.is_qr_code_visible()
        was_visible = self._state.qr_challenge_visible

        if visible and not was_visible:
            self._on_challenge_appeared()
        elif was_visible and not visible:
            self._on_challenge_cleared()
        self._state.qr_challenge_visible = visible

        if not visible:
            self._hide_if_due()

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    def _on_challenge_appeared(self) -> None:
        self._hide_due = None
        self._notifier.log("检测到二维码弹窗出现，请微信扫码进行人脸识别。", "warning")
        self._notifier.show_window()
        self._notifier.qr_image(self._page.qr_code_base64())
        self.countdown.stop()
        self.countdown.start()

    def _on_challenge_cleared(self) -> None:
        self.countdown.stop()
        self._notifier.qr_timer(QR_SUCCESS_SENTINEL)
        self._notifier.log("人脸识别成功。", "success")
        self._repush_watched_seconds()
        self._hide_due = self._clock.monotonic() + self._hide_delay

    def _repush_watched_seconds(self) -> None:
        resource_id = self._state.active_course_id
        if resource_id is None:
            return
        try:
            entry = self._inspector.snapshot(wait=False).find(resource_id)
        except TRANSIENT_ERRORS:
            logger.debug("Could not re-read watched seconds for %s", resource_id, exc_info=True)
            return
        if entry is not None:
            self._notifier.progress(ProgressUpdate(entry.resource_id, entry.watched_seconds))

    def _hide_if_due(self) -> None:
        if self._hide_due is None or self._clock.monotonic() < self._hide_due:
            return
        self._hide_due = None
        self._notifier.log("二维码弹窗消失，自动隐藏窗口。")
        self._notifier.hide_window()

    # ------------------------------------------------------------------
    # Loop and restart policy
    # ------------------------------------------------------------------
    def _supervise(self, stop_event: threading.Event) -> None:
        try:
            while not stop_event.is_set():
                try:
                    self._watch(stop_event)
                    return
                except Exception as exc:
                    logger.exception("QR guardian crashed")
                    self._restart_count += 1
                    if self._restart_count > self._max_restarts:
                        self._notifier.log(
                            f"二维码守护多次异常（{exc}），已停止，请退出程序重新打开。",
                            "warning",
                        )
                        return
                    self._notifier.log(
                        f"二维码守护异常，{self._restart_delay:g}秒后自动重启（第{self._restart_count}次）。",
                        "warning",
                    )
                    if stop_event.wait(self._restart_delay):
                        return
                    self._reset()
        finally:
            with self._lock:
                if self._stop_event is stop_event:
                    self._running = False

    def _watch(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            try:
                self.tick()
            except TRANSIENT_ERRORS:
                logger.debug("QR guardian tick failed, retrying later", exc_info=True)
                if stop_event.wait(self._error_delay):
                    return
                continue
            self._restart_count = 0

    def _reset(self) -> None:
        self.countdown.stop()
        self._state.qr_challenge_visible = False
        self._hide_due = None
