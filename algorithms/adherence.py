import datetime
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel


class CompletedSession(BaseModel):
    """One logged workout tied to a calendar date."""

    date: datetime.date
    name: str
    duration_minutes: int = 0
    exercises_completed: int = 0
    total_exercises: int = 0


class TrainingDayDefinition(BaseModel):
    """A slot in a routine's weekly cycle."""

    day_number: int
    is_rest_day: bool = False
    week_number: int = 1
    name: str = ""
    id: Optional[int] = None


class AdherenceReport(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    weekly_completed: int = 0
    weekly_planned: int = 0
    weekly_percentage: float = 0.0
    last_workout_date: Optional[datetime.date] = None


class AdherenceEngine:
    """Compute streaks and weekly adherence from completed sessions.

    Every method is a pure function of its arguments. ``today`` is always a
    ``datetime.date`` so that comparisons never cross a local-time midnight.
    """

    @staticmethod
    def distinct_dates(sessions: Iterable[CompletedSession] | None) -> List[datetime.date]:
        """Return the unique session dates in ascending order."""
        if not sessions:
            return []
        return sorted({s.date for s in sessions if s is not None})

    @staticmethod
    def week_window(today: datetime.date) -> Tuple[datetime.date, datetime.date]:
        """Return the Monday..Sunday range containing ``today``."""
        # isoweekday: Monday=1 .. Sunday=7, so Sunday is 6 days past Monday
        monday = today - datetime.timedelta(days=today.isoweekday() - 1)
        return monday, monday + datetime.timedelta(days=6)

    @classmethod
    def current_streak(
        cls, sessions: Iterable[CompletedSession] | None, today: datetime.date
    ) -> int:
        dates = cls.distinct_dates(sessions)
        if not dates:
            return 0
        cursor = today
        if cursor not in dates:
            cursor -= datetime.timedelta(days=1)
        streak = 0
        for d in reversed(dates):
            if d > cursor:
                continue
            if d < cursor:
                break
            streak += 1
            cursor -= datetime.timedelta(days=1)
        return streak

    @classmethod
    def longest_streak(cls, sessions: Iterable[CompletedSession] | None) -> int:
        dates = cls.distinct_dates(sessions)
        if not dates:
            return 0
        longest = run = 1
        for prev, cur in zip(dates, dates[1:]):
            if (cur - prev).days == 1:
                run += 1
            else:
                run = 1
            longest = max(longest, run)
        return longest

    @classmethod
    def weekly_completed(
        cls, sessions: Iterable[CompletedSession] | None, today: datetime.date
    ) -> int:
        start, end = cls.week_window(today)
        return len([d for d in cls.distinct_dates(sessions) if start <= d <= end])

    @staticmethod
    def weekly_planned(days: Iterable[TrainingDayDefinition] | None) -> int:
        """Count distinct non-rest day numbers across all weeks of the routine."""
        if not days:
            return 0
        return len({d.day_number for d in days if d is not None and not d.is_rest_day})

    @staticmethod
    def weekly_percentage(completed: int, planned: int) -> float:
        if planned <= 0:
            return 0.0
        return round(min(100.0, completed / planned * 100.0), 2)

    @staticmethod
    def next_workout(
        days: Iterable[TrainingDayDefinition] | None, today: datetime.date
    ) -> Optional[TrainingDayDefinition]:
        """Return the next non-rest day of the routine's first configured week.

        Days later in the current week win; otherwise wrap around to the
        earliest day of the following week.
        """
        training = [d for d in (days or []) if d is not None and not d.is_rest_day]
        if not training:
            return None
        first_week = min(d.week_number for d in training)
        week_days = sorted(
            (d for d in training if d.week_number == first_week),
            key=lambda d: d.day_number,
        )
        weekday = today.isoweekday()
        for day in week_days:
            if day.day_number > weekday:
                return day
        return week_days[0]

    @classmethod
    def report(
        cls,
        sessions: Iterable[CompletedSession] | None,
        days: Iterable[TrainingDayDefinition] | None,
        today: datetime.date | None = None,
    ) -> AdherenceReport:
        """Build the full adherence report for ``today``."""
        today = today or datetime.date.today()
        sessions = list(sessions or [])
        dates = cls.distinct_dates(sessions)
        completed = cls.weekly_completed(sessions, today)
        planned = cls.weekly_planned(days)
        return AdherenceReport(
            current_streak=cls.current_streak(sessions, today),
            longest_streak=cls.longest_streak(sessions),
            weekly_completed=completed,
            weekly_planned=planned,
            weekly_percentage=cls.weekly_percentage(completed, planned),
            last_workout_date=dates[-1] if dates else None,
        )
