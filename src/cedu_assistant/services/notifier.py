from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from cedu_assistant.models import CourseListSnapshot
from cedu_assistant.utils.time import SYSTEM_CLOCK, Clock, format_clock_time

logger = logging.getLogger(__name__)

_VALID_TONES = {"info", "success", "warning", "normal"}

QR_SUCCESS_SENTINEL = -1


class UiEvent(str, Enum):
    LOG = "log"
    CAPTCHA = "captcha"
    COURSE_LIST = "course_list"
    CURRENT_PROGRESS = "current_progress"
    QR_IMAGE = "qr_image"
    QR_TIMER = "qr_timer"
    SEND_ENABLED = "send_enabled"
    REFRESH_ENABLED = "refresh_enabled"
    WINDOW_SHOW = "window_show"
    WINDOW_HIDE = "window_hide"


@dataclass(slots=True)
class LogMessage:

    text: str
    tone: str = "info"
    timestamp: datetime = field(default_factory=datetime.now)

    def normalized_tone(self) -> str:
        tone = (self.tone or "info").lower()
        if tone not in _VALID_TONES:
            return "info"
        return tone

    def formatted(self) -> str:
        return f"[{format_clock_time(self.timestamp)}] {self.text}"


@dataclass(frozen=True, slots=True)
class CourseListUpdate:
    snapshot: CourseListSnapshot
    current_watched_seconds: int = 0


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    resource_id: str
    watched_seconds: int
    remaining_seconds: int | None = None
    finish_time: str | None = None


Subscriber = Callable[[Any], None]


class Notifier:
    """One-way push channel from the automation threads to the window.

    Subscribers are called on the emitting thread; the window is responsible
    for marshalling onto its own event loop.
    """

    def __init__(self, *, clock: Clock = SYSTEM_CLOCK) -> None:
        self._clock = clock
        self._subscribers: dict[UiEvent, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()
        self._last_log_text: str | None = None

    def subscribe(self, event: UiEvent, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[event]:
                    self._subscribers[event].remove(callback)

        return unsubscribe

    def has_subscribers(self, event: UiEvent) -> bool:
        with self._lock:
            return bool(self._subscribers.get(event))

    def emit(self, event: UiEvent, payload: Any = None) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event, ()))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:  # pragma: no cover - subscribers must not break automation
                logger.debug("Subscriber for %s failed", event.value, exc_info=True)

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------
    def log(self, text: str, tone: str = "info") -> LogMessage | None:
        cleaned = (text or "").strip()
        if not cleaned:
            return None
        with self._lock:
            if cleaned == self._last_log_text:
                return None
            self._last_log_text = cleaned

        message = LogMessage(cleaned, tone, self._clock.now())
        level = logging.WARNING if message.normalized_tone() == "warning" else logging.INFO
        logger.log(level, message.text)
        self.emit(UiEvent.LOG, message)
        return message

    def captcha(self, image_base64: str) -> None:
        self.emit(UiEvent.CAPTCHA, image_base64)

    def course_list(self, snapshot: CourseListSnapshot, current_watched_seconds: int = 0) -> None:
        self.emit(UiEvent.COURSE_LIST, CourseListUpdate(snapshot, current_watched_seconds))

    def progress(self, update: ProgressUpdate) -> None:
        self.emit(UiEvent.CURRENT_PROGRESS, update)

    def qr_image(self, image_base64: str) -> None:
        self.emit(UiEvent.QR_IMAGE, image_base64)

    def qr_timer(self, value: str | int) -> None:
        self.emit(UiEvent.QR_TIMER, value)

    def set_send_enabled(self, enabled: bool) -> None:
        self.emit(UiEvent.SEND_ENABLED, bool(enabled))

    def set_refresh_enabled(self, enabled: bool) -> None:
        self.emit(UiEvent.REFRESH_ENABLED, bool(enabled))

    def show_window(self) -> None:
        self.emit(UiEvent.WINDOW_SHOW)

    def hide_window(self) -> None:
        self.emit(UiEvent.WINDOW_HIDE)
