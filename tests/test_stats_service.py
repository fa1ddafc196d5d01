import os
import sys
import datetime
import sqlite3
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    UserRepository,
    RoutineRepository,
    WorkoutDayRepository,
    ExerciseRepository,
    WorkoutHistoryRepository,
    SettingsRepository,
)
from stats_service import StatisticsService

MONDAY = datetime.date(2024, 6, 10)


@pytest.fixture
def env(tmp_path):
    db_file = str(tmp_path / "workout.db")
    uid = UserRepository(db_file).create("ana@example.com", "hash")
    routines = RoutineRepository(db_file)
    days = WorkoutDayRepository(db_file)
    exercises = ExerciseRepository(db_file)
    history = WorkoutHistoryRepository(db_file)
    stats = StatisticsService(routines, days, exercises, history)
    return {
        "uid": uid,
        "routines": routines,
        "days": days,
        "exercises": exercises,
        "history": history,
        "stats": stats,
    }


def _routine(env):
    rid = env["routines"].create(env["uid"], "PPL", total_weeks=2)
    push = env["days"].add(rid, 1, "Push")
    pull = env["days"].add(rid, 3, "Pull")
    env["days"].add(rid, 5, "Legs")
    env["days"].add(rid, 1, "Push B", week_number=2)
    env["days"].add(rid, 7, "Rest", is_rest_day=True)
    env["exercises"].add(push, "Bench", 4, "8")
    env["exercises"].add(pull, "Row", 4, "10")
    env["exercises"].add(pull, "Curl", 3, "12")
    env["routines"].set_active(env["uid"], rid)
    return rid


def test_adherence_without_data(env):
    report = env["stats"].adherence(env["uid"], MONDAY)
    assert report.weekly_planned == 0
    assert report.weekly_percentage == 0.0
    assert report.current_streak == 0
    assert env["stats"].next_workout(env["uid"], MONDAY) is None


def test_adherence_with_active_routine(env):
    _routine(env)
    env["history"].record(env["uid"], "2024-06-09", "Legs", 50, 3, 3)
    env["history"].record(env["uid"], "2024-06-10", "Push", 45, 1, 1)
    env["history"].record(env["uid"], "2024-06-10", "Cardio", 20)
    report = env["stats"].adherence(env["uid"], MONDAY)
    assert report.current_streak == 2
    assert report.weekly_completed == 1
    assert report.weekly_planned == 3
    assert report.weekly_percentage == 33.33
    assert report.last_workout_date == MONDAY


def test_only_active_routine_counts(env):
    _routine(env)
    other = env["routines"].create(env["uid"], "Full body")
    env["days"].add(other, 2, "Full")
    assert env["stats"].adherence(env["uid"], MONDAY).weekly_planned == 3
    env["routines"].set_active(env["uid"], other)
    assert env["stats"].adherence(env["uid"], MONDAY).weekly_planned == 1


def test_next_workout_with_exercise_count(env):
    _routine(env)
    nxt = env["stats"].next_workout(env["uid"], MONDAY)
    assert nxt["name"] == "Pull"
    assert nxt["day_number"] == 3
    assert nxt["exercise_count"] == 2
    sunday = datetime.date(2024, 6, 16)
    assert env["stats"].next_workout(env["uid"], sunday)["name"] == "Push"


def test_loader_failure_is_treated_as_no_data(env, monkeypatch):
    _routine(env)

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(env["history"], "fetch_for_user", broken)
    report = env["stats"].adherence(env["uid"], MONDAY)
    assert report.weekly_completed == 0
    assert report.weekly_planned == 3


def test_history_stats(env):
    assert env["stats"].history_stats(env["uid"], MONDAY)["total_workouts"] == 0
    env["history"].record(env["uid"], "2024-06-08", "Legs", 50, 3, 4)
    env["history"].record(env["uid"], "2024-06-09", "Pull", 45, 4, 4)
    env["history"].record(env["uid"], "2024-06-10", "Push", 40, 2, 4)
    stats = env["stats"].history_stats(env["uid"], MONDAY)
    assert stats["total_workouts"] == 3
    assert stats["total_duration"] == 135
    assert stats["average_duration"] == 45
    assert stats["completion_rate"] == 75
    assert stats["current_streak"] == 3
    assert stats["longest_streak"] == 3


def test_filter_history(env):
    env["history"].record(env["uid"], "2024-06-10", "Push A", 40)
    env["history"].record(env["uid"], "2024-06-01", "Pull", 60)
    env["history"].record(env["uid"], "2023-12-01", "Push B", 30)
    names = lambda rows: [r["workout_name"] for r in rows]
    assert names(env["stats"].filter_history(env["uid"], today=MONDAY)) == [
        "Push A",
        "Pull",
        "Push B",
    ]
    assert names(env["stats"].filter_history(env["uid"], search="push", today=MONDAY)) == [
        "Push A",
        "Push B",
    ]
    assert names(env["stats"].filter_history(env["uid"], period="week", today=MONDAY)) == [
        "Push A"
    ]
    assert names(env["stats"].filter_history(env["uid"], period="month", today=MONDAY)) == [
        "Push A",
        "Pull",
    ]
    assert names(
        env["stats"].filter_history(env["uid"], sort_by="duration_desc", today=MONDAY)
    ) == ["Pull", "Push A", "Push B"]
    assert names(
        env["stats"].filter_history(env["uid"], sort_by="date_asc", today=MONDAY)
    ) == ["Push B", "Pull", "Push A"]
    with pytest.raises(ValueError, match="invalid period"):
        env["stats"].filter_history(env["uid"], period="decade")
    with pytest.raises(ValueError, match="invalid sort"):
        env["stats"].filter_history(env["uid"], sort_by="name")


def test_weekly_schedule(env):
    _routine(env)
    env["history"].record(env["uid"], "2024-06-10", "Push", 45)
    wednesday = datetime.date(2024, 6, 12)
    schedule = env["stats"].weekly_schedule(env["uid"], today=wednesday)
    assert [e["day"] for e in schedule][0] == "Monday"
    assert [e["workout"] for e in schedule] == [
        "Push",
        "Free",
        "Pull",
        "Free",
        "Legs",
        "Free",
        "Rest",
    ]
    assert schedule[0]["completed"] is True
    assert schedule[0]["date"] == "2024-06-10"
    assert schedule[2]["is_today"] is True
    assert schedule[2]["exercise_count"] == 2
    assert schedule[2]["estimated_minutes"] == 20
    assert schedule[6]["is_rest"] is True
    assert schedule[6]["estimated_minutes"] == 0
    week_two = env["stats"].weekly_schedule(env["uid"], week_number=2, today=wednesday)
    assert week_two[0]["workout"] == "Push B"


def test_weekly_schedule_when_routine_cannot_be_loaded(env, monkeypatch):
    _routine(env)

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(env["routines"], "fetch_active", broken)
    schedule = env["stats"].weekly_schedule(env["uid"], today=MONDAY)
    assert [e["workout"] for e in schedule] == ["Free"] * 7
    assert all(e["exercise_count"] == 0 for e in schedule)


def test_weekly_schedule_when_exercises_cannot_be_loaded(env, monkeypatch):
    _routine(env)

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("no such table: exercises")

    monkeypatch.setattr(env["exercises"], "fetch_for_days", broken)
    schedule = env["stats"].weekly_schedule(env["uid"], today=MONDAY)
    assert schedule[0]["workout"] == "Push"
    assert schedule[0]["exercise_count"] == 0
    assert schedule[0]["estimated_minutes"] == 20


def test_today_follows_timezone_setting(env, tmp_path):
    settings = SettingsRepository(
        str(tmp_path / "workout.db"), str(tmp_path / "settings.yaml")
    )
    stats = StatisticsService(
        env["routines"], env["days"], env["exercises"], env["history"], settings
    )
    settings.set_text("timezone", "Pacific/Kiritimati")
    ahead = stats.today()
    settings.set_text("timezone", "Etc/GMT+12")
    behind = stats.today()
    assert ahead > behind


def test_unknown_timezone_uses_utc(env, tmp_path):
    settings = SettingsRepository(
        str(tmp_path / "workout.db"), str(tmp_path / "settings.yaml")
    )
    stats = StatisticsService(
        env["routines"], env["days"], env["exercises"], env["history"], settings
    )
    settings.set_text("timezone", "Mars/Olympus_Mons")
    before = datetime.datetime.now(datetime.timezone.utc).date()
    today = stats.today()
    after = datetime.datetime.now(datetime.timezone.utc).date()
    assert today in {before, after}
