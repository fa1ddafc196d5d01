from __future__ import annotations
import logging
import threading
import time
from typing import Optional

from algorithms import AdherenceReport
from db import SettingsRepository
from execution_service import WorkoutEvents
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


class DashboardRefresher(threading.Thread):
    """Background thread keeping a user's adherence report current.

    The report is recomputed when the thread starts, every ``interval``
    seconds while ``visible``, whenever :meth:`focus` is called and when a
    matching "workout completed" event arrives. Refreshes are not
    serialised, so the most recently written report wins.
    Periodic polling only happens while ``auto_refresh`` is set.
    """

    def __init__(
        self,
        stats: StatisticsService,
        user_id: int,
        interval: float = 30.0,
        events: WorkoutEvents | None = None,
        auto_refresh: bool = True,
    ) -> None:
        super().__init__(daemon=True)
        self.stats = stats
        self.user_id = user_id
        self.interval = interval
        self.events = events
        self.auto_refresh = auto_refresh
        self.visible = True
        self.latest: Optional[AdherenceReport] = None
        self.updated_at: Optional[float] = None
        self._report_lock = threading.Lock()
        self._halt = threading.Event()
        if events is not None:
            events.subscribe(self._on_event)

    @classmethod
    def from_settings(
        cls,
        stats: StatisticsService,
        settings: SettingsRepository,
        user_id: int,
        events: WorkoutEvents | None = None,
    ) -> "DashboardRefresher":
        """Build a refresher using the stored refresh interval and toggle."""
        return cls(
            stats,
            user_id,
            interval=settings.get_float("refresh_interval_seconds", 30.0),
            events=events,
            auto_refresh=settings.get_bool("auto_refresh_enabled", True),
        )

    def refresh(self) -> Optional[AdherenceReport]:
        try:
            report = self.stats.adherence(self.user_id)
        except Exception:
            logger.exception("dashboard refresh failed for user %s", self.user_id)
            return None
        with self._report_lock:
            self.latest = report
            self.updated_at = time.time()
        return report

    def _on_event(self, event: dict) -> None:
        if event.get("user_id") == self.user_id:
            self.refresh()

    def focus(self) -> None:
        self.visible = True
        self.refresh()

    def hide(self) -> None:
        self.visible = False

    def run(self) -> None:
        self.refresh()
        while not self._halt.wait(self.interval):
            if self.auto_refresh and self.visible:
                self.refresh()

    def stop(self) -> None:
        self._halt.set()
        if self.events is not None:
            self.events.unsubscribe(self._on_event)
