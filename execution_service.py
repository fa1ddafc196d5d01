from __future__ import annotations
import datetime
import itertools
import logging
import math
import threading
import time
from typing import Callable, Optional

from db import WorkoutDayRepository, ExerciseRepository, WorkoutHistoryRepository

logger = logging.getLogger(__name__)


class WorkoutEvents:
    """Publish/subscribe hub for the "workout completed" signal."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[dict], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[dict], None]) -> None:
        with self._lock:
            self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[dict], None]) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def emit(self, event: dict) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event)
            except Exception:
                logger.exception("workout completed listener failed")


class WorkoutExecution:
    """State of one guided workout: set counts, rest timer and pauses."""

    def __init__(
        self,
        day: dict,
        exercises: list[dict],
        clock: Callable[[], float] = time.monotonic,
        today: datetime.date | None = None,
    ) -> None:
        self.day = day
        self.exercises = sorted(exercises, key=lambda e: e.get("exercise_order") or 0)
        self.progress = [
            {"exercise_id": e["id"], "completed_sets": 0, "is_completed": False}
            for e in self.exercises
        ]
        self.current_index = 0
        self._clock = clock
        self.start_date = today or datetime.date.today()
        self._started_at = clock()
        self._paused_at: Optional[float] = None
        self._paused_total = 0.0
        self._rest_until: Optional[float] = None
        self.finished = False

    @staticmethod
    def format_time(seconds: int) -> str:
        """Return ``seconds`` as ``MM:SS``."""
        seconds = max(0, int(seconds))
        return f"{seconds // 60:02d}:{seconds % 60:02d}"

    def _now(self) -> float:
        return self._paused_at if self._paused_at is not None else self._clock()

    def _ensure_running(self) -> None:
        if self.finished:
            raise ValueError("workout already finished")

    @property
    def current_exercise(self) -> Optional[dict]:
        if 0 <= self.current_index < len(self.exercises):
            return self.exercises[self.current_index]
        return None

    @property
    def is_paused(self) -> bool:
        return self._paused_at is not None

    def complete_set(self) -> None:
        self._ensure_running()
        if self.current_exercise is None:
            return
        self.progress[self.current_index]["completed_sets"] += 1

    def complete_exercise(self) -> None:
        """Mark the current exercise done, start rest and advance."""
        self._ensure_running()
        if self.current_exercise is None:
            return
        self.progress[self.current_index]["is_completed"] = True
        if self.current_index < len(self.exercises) - 1:
            rest = self.exercises[self.current_index + 1].get("rest_seconds")
            if rest:
                self._rest_until = self._now() + rest
            self.current_index += 1

    def rest_time_left(self) -> int:
        if self._rest_until is None:
            return 0
        remaining = math.ceil(self._rest_until - self._now())
        if remaining <= 0:
            self._rest_until = None
            return 0
        return remaining

    @property
    def is_resting(self) -> bool:
        return self.rest_time_left() > 0

    def skip_rest(self) -> None:
        self._rest_until = None

    def pause(self) -> None:
        self._ensure_running()
        if self._paused_at is None:
            self._paused_at = self._clock()

    def resume(self) -> None:
        self._ensure_running()
        if self._paused_at is None:
            return
        delta = self._clock() - self._paused_at
        self._paused_total += delta
        if self._rest_until is not None:
            self._rest_until += delta
        self._paused_at = None

    def elapsed_seconds(self) -> int:
        return int(self._now() - self._started_at - self._paused_total)

    def completed_exercises(self) -> int:
        return sum(1 for p in self.progress if p["is_completed"])

    def summary(self) -> dict:
        current = self.current_exercise
        return {
            "workout_day_id": self.day.get("id"),
            "workout_name": self.day.get("day_name"),
            "start_date": self.start_date.isoformat(),
            "current_index": self.current_index,
            "current_exercise": current["name"] if current else None,
            "progress": [dict(p) for p in self.progress],
            "elapsed": self.format_time(self.elapsed_seconds()),
            "rest_time_left": self.rest_time_left(),
            "is_paused": self.is_paused,
            "finished": self.finished,
        }

    def finish(
        self,
        history_repo: WorkoutHistoryRepository,
        user_id: int,
        events: WorkoutEvents | None = None,
    ) -> int:
        """Record the session in the history and announce completion."""
        self._ensure_running()
        minutes = int(self.elapsed_seconds() / 60 + 0.5)
        history_id = history_repo.record(
            user_id,
            self.start_date.isoformat(),
            self.day.get("day_name") or "Workout",
            minutes,
            self.completed_exercises(),
            len(self.exercises),
        )
        self.finished = True
        if events is not None:
            events.emit(
                {
                    "type": "workout_completed",
                    "user_id": user_id,
                    "history_id": history_id,
                }
            )
        return history_id


class ExecutionManager:
    """Track in-flight executions for API clients."""

    def __init__(
        self,
        day_repo: WorkoutDayRepository,
        exercise_repo: ExerciseRepository,
        history_repo: WorkoutHistoryRepository,
        events: WorkoutEvents | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.days = day_repo
        self.exercises = exercise_repo
        self.history = history_repo
        self.events = events
        self._clock = clock
        self._active: dict[int, tuple[int, WorkoutExecution]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def start(self, user_id: int, day_id: int, today: datetime.date | None = None) -> int:
        day = self.days.fetch_detail(day_id)
        if day["is_rest_day"]:
            raise ValueError("cannot start a rest day")
        exercises = self.exercises.fetch_for_day(day_id)
        if not exercises:
            raise ValueError("workout day has no exercises")
        execution = WorkoutExecution(day, exercises, clock=self._clock, today=today)
        with self._lock:
            exec_id = next(self._ids)
            self._active[exec_id] = (user_id, execution)
        return exec_id

    def get(self, user_id: int, exec_id: int) -> WorkoutExecution:
        with self._lock:
            entry = self._active.get(exec_id)
        if entry is None or entry[0] != user_id:
            raise ValueError("execution not found")
        return entry[1]

    def finish(self, user_id: int, exec_id: int) -> int:
        execution = self.get(user_id, exec_id)
        history_id = execution.finish(self.history, user_id, self.events)
        self.discard(user_id, exec_id)
        return history_id

    def discard(self, user_id: int, exec_id: int) -> None:
        self.get(user_id, exec_id)
        with self._lock:
            self._active.pop(exec_id, None)
