from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class IntervalLoop:
    """Run ``tick`` on a daemon thread every ``interval`` seconds until stopped.

    The first tick happens one interval after ``start``. ``start`` is
    idempotent and ``stop`` may be called from inside ``tick``.
    """

    def __init__(self, name: str, tick: Callable[[], None], interval: float = 1.0) -> None:
        self._name = name
        self._tick = tick
        self._interval = interval
        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=self._name,
                daemon=True,
            )
            self._running = True
            self._thread.start()
            return True

    def stop(self, timeout: float = 1.5) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            try:
                self._tick()
            except Exception:
                logger.exception("Unhandled error in %s tick", self._name)
        with self._lock:
            if self._stop_event is stop_event:
                self._running = False
