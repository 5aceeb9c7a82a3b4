from __future__ import annotations

import logging
from datetime import timedelta

from cedu_assistant.automation.inspector import PageInspector
from cedu_assistant.models import CourseEntry, CourseListSnapshot, SessionState
from cedu_assistant.services.notifier import Notifier, ProgressUpdate
from cedu_assistant.utils.loop import IntervalLoop
from cedu_assistant.utils.time import SYSTEM_CLOCK, Clock, format_clock_time

logger = logging.getLogger(__name__)


class ProgressPoller:
    """Track the active course once per tick and advance when it completes.

    Suspended (no active course) ticks are no-ops; when the last course is
    done the poller suspends itself and stops its interval loop.
    """

    def __init__(
        self,
        inspector: PageInspector,
        notifier: Notifier,
        state: SessionState,
        *,
        clock: Clock = SYSTEM_CLOCK,
        interval: float = 1.0,
    ) -> None:
        self._inspector = inspector
        self._notifier = notifier
        self._state = state
        self._clock = clock
        self._loop = IntervalLoop("progress-poller", self.tick, interval)

    @property
    def is_running(self) -> bool:
        return self._loop.is_running

    @property
    def is_suspended(self) -> bool:
        return self._state.active_course_id is None

    def start(self) -> bool:
        if self.is_suspended:
            return False
        return self._loop.start()

    def stop(self) -> None:
        self._loop.stop()

    def tick(self) -> None:
        resource_id = self._state.active_course_id
        if resource_id is None:
            return
        try:
            self._track(resource_id)
        except Exception:
            # The page is often mid-navigation; the next tick simply retries.
            logger.debug("Progress tick failed for %s", resource_id, exc_info=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _track(self, resource_id: str) -> None:
        snapshot = self._inspector.snapshot(wait=False)
        entry = snapshot.find(resource_id)
        if entry is None:
            return

        finish_time = self._clock.now() + timedelta(seconds=entry.remaining_seconds)
        self._notifier.progress(
            ProgressUpdate(
                resource_id=entry.resource_id,
                watched_seconds=entry.watched_seconds,
                remaining_seconds=snapshot.remaining_seconds(entry.watched_seconds),
                finish_time=format_clock_time(finish_time),
            )
        )

        previous = self._state.last_watched_seconds
        if previous is not None and previous > 0 and entry.watched_seconds == 0:
            # Heuristic: the player moved to another course under the same slot.
            self._notifier.log("检测到课件切换，刷新课件列表。")
            refreshed = self._inspector.snapshot(wait=False)
            self._notifier.course_list(refreshed, entry.watched_seconds)
        self._state.last_watched_seconds = entry.watched_seconds

        if entry.is_complete:
            self._advance(snapshot, entry)

    def _advance(self, snapshot: CourseListSnapshot, finished: CourseEntry) -> None:
        upcoming = snapshot.next_course(exclude=finished.resource_id)
        if upcoming is not None:
            self._state.track(upcoming.resource_id)
            self._notifier.log(f"课件“{finished.name}”已学完，切换到“{upcoming.name}”。", "success")
            self._notifier.course_list(snapshot, upcoming.watched_seconds)
            return

        self._state.track(None)
        self._notifier.course_list(snapshot, 0)
        self._notifier.log("所有课件均已学完，停止进度跟踪。", "success")
        self._loop.stop()
