from __future__ import annotations
import datetime
import logging
import sqlite3
from typing import List, Optional, Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from db import (
    RoutineRepository,
    WorkoutDayRepository,
    ExerciseRepository,
    WorkoutHistoryRepository,
    SettingsRepository,
)
from algorithms import (
    AdherenceEngine,
    AdherenceReport,
    CompletedSession,
    TrainingDayDefinition,
)

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


class StatisticsService:
    """Load routine and history data and compute adherence statistics."""

    DAY_NAMES = [
        "Monday",
        "Tuesday",
        "Wednesday",
        "Thursday",
        "Friday",
        "Saturday",
        "Sunday",
    ]
    PERIODS = {"all": None, "week": 7, "month": 30, "year": 365}
    SORTS = {"date_desc", "date_asc", "duration_desc", "duration_asc"}

    def __init__(
        self,
        routine_repo: RoutineRepository,
        day_repo: WorkoutDayRepository,
        exercise_repo: ExerciseRepository,
        history_repo: WorkoutHistoryRepository,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.routines = routine_repo
        self.days = day_repo
        self.exercises = exercise_repo
        self.history = history_repo
        self.settings = settings_repo

    def today(self) -> datetime.date:
        """Current calendar date in the configured ``timezone`` setting."""
        if self.settings is None:
            return datetime.date.today()
        name = self.settings.get_text("timezone", "UTC")
        try:
            zone = ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("unknown timezone %s, using UTC", name)
            return datetime.datetime.now(datetime.timezone.utc).date()
        return datetime.datetime.now(zone).date()

    def _history_rows(self, user_id: int) -> List[dict]:
        try:
            return self.history.fetch_for_user(user_id)
        except sqlite3.Error as e:
            logger.warning("could not load history for user %s: %s", user_id, e)
            return []

    def _load_sessions(self, user_id: int) -> List[CompletedSession]:
        sessions: List[CompletedSession] = []
        for row in self._history_rows(user_id):
            try:
                date = datetime.date.fromisoformat(row["workout_date"])
            except (TypeError, ValueError):
                logger.warning("skipping history row %s with bad date", row["id"])
                continue
            sessions.append(
                CompletedSession(
                    date=date,
                    name=row["workout_name"],
                    duration_minutes=row["duration_minutes"] or 0,
                    exercises_completed=row["exercises_completed"] or 0,
                    total_exercises=row["total_exercises"] or 0,
                )
            )
        return sessions

    def _active_day_rows(
        self, user_id: int, week_number: int | None = None
    ) -> Optional[List[dict]]:
        try:
            routine = self.routines.fetch_active(user_id)
            if routine is None:
                return None
            return self.days.fetch_for_routine(routine["id"], week_number)
        except sqlite3.Error as e:
            logger.warning("could not load routine for user %s: %s", user_id, e)
            return None

    def _load_active_days(self, user_id: int) -> Optional[List[TrainingDayDefinition]]:
        rows = self._active_day_rows(user_id)
        if rows is None:
            return None
        return [
            TrainingDayDefinition(
                id=r["id"],
                day_number=r["day_number"],
                is_rest_day=r["is_rest_day"],
                week_number=r["week_number"],
                name=r["day_name"],
            )
            for r in rows
        ]

    def adherence(
        self, user_id: int, today: datetime.date | None = None
    ) -> AdherenceReport:
        """Return the dashboard report for ``user_id``."""
        return AdherenceEngine.report(
            self._load_sessions(user_id),
            self._load_active_days(user_id),
            today or self.today(),
        )

    def next_workout(
        self, user_id: int, today: datetime.date | None = None
    ) -> Optional[Dict[str, object]]:
        day = AdherenceEngine.next_workout(
            self._load_active_days(user_id), today or self.today()
        )
        if day is None:
            return None
        return {
            "workout_day_id": day.id,
            "name": day.name,
            "day_number": day.day_number,
            "week_number": day.week_number,
            "exercise_count": self.exercises.count_for_day(day.id) if day.id else 0,
        }

    def history_stats(
        self, user_id: int, today: datetime.date | None = None
    ) -> Dict[str, float]:
        """Totals, averages and streaks shown on the history page."""
        sessions = self._load_sessions(user_id)
        if not sessions:
            return {
                "total_workouts": 0,
                "total_duration": 0,
                "average_duration": 0,
                "completion_rate": 0,
                "current_streak": 0,
                "longest_streak": 0,
            }
        total_workouts = len(sessions)
        total_duration = sum(s.duration_minutes for s in sessions)
        completed = sum(s.exercises_completed for s in sessions)
        planned = sum(s.total_exercises for s in sessions)
        return {
            "total_workouts": total_workouts,
            "total_duration": total_duration,
            "average_duration": _round_half_up(total_duration / total_workouts),
            "completion_rate": _round_half_up(completed / planned * 100) if planned else 0,
            "current_streak": AdherenceEngine.current_streak(
                sessions, today or self.today()
            ),
            "longest_streak": AdherenceEngine.longest_streak(sessions),
        }

    def filter_history(
        self,
        user_id: int,
        search: str | None = None,
        period: str = "all",
        sort_by: str = "date_desc",
        today: datetime.date | None = None,
    ) -> List[dict]:
        if period not in self.PERIODS:
            raise ValueError(f"invalid period: {period}")
        if sort_by not in self.SORTS:
            raise ValueError(f"invalid sort: {sort_by}")
        rows = self._history_rows(user_id)
        if search:
            needle = search.lower()
            rows = [r for r in rows if needle in r["workout_name"].lower()]
        days_back = self.PERIODS[period]
        if days_back is not None:
            since = ((today or self.today()) - datetime.timedelta(days=days_back)).isoformat()
            rows = [r for r in rows if r["workout_date"] >= since]
        if sort_by == "date_asc":
            rows.sort(key=lambda r: (r["workout_date"], r["id"]))
        elif sort_by == "date_desc":
            rows.sort(key=lambda r: (r["workout_date"], r["id"]), reverse=True)
        elif sort_by == "duration_desc":
            rows.sort(key=lambda r: r["duration_minutes"], reverse=True)
        else:
            rows.sort(key=lambda r: r["duration_minutes"])
        return rows

    def weekly_schedule(
        self,
        user_id: int,
        week_number: int = 1,
        today: datetime.date | None = None,
    ) -> List[Dict[str, object]]:
        """Return Monday..Sunday entries of the active routine for this week."""
        today = today or self.today()
        days = self._active_day_rows(user_id, week_number) or []
        counts: Dict[int, int] = {}
        try:
            exercises = self.exercises.fetch_for_days(d["id"] for d in days)
        except sqlite3.Error as e:
            logger.warning("could not load exercises for user %s: %s", user_id, e)
            exercises = []
        for ex in exercises:
            counts[ex["workout_day_id"]] = counts.get(ex["workout_day_id"], 0) + 1
        trained = {s.date for s in self._load_sessions(user_id)}
        monday, _sunday = AdherenceEngine.week_window(today)
        schedule: List[Dict[str, object]] = []
        for i, label in enumerate(self.DAY_NAMES):
            date = monday + datetime.timedelta(days=i)
            day = next((d for d in days if d["day_number"] == i + 1), None)
            if day is None:
                workout = "Free"
            elif day["is_rest_day"]:
                workout = "Rest"
            else:
                workout = day["day_name"]
            count = counts.get(day["id"], 0) if day else 0
            is_rest = day is None or day["is_rest_day"]
            schedule.append(
                {
                    "day": label,
                    "date": date.isoformat(),
                    "workout": workout,
                    "workout_day_id": day["id"] if day else None,
                    "exercise_count": count,
                    "estimated_minutes": 0 if is_rest else max(count * 3, 20),
                    "is_rest": is_rest,
                    "is_today": date == today,
                    "completed": date in trained,
                }
            )
        return schedule
