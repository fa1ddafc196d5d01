import os
import sys
import sqlite3
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    Database,
    UserRepository,
    ProfileRepository,
    RoutineRepository,
    WorkoutDayRepository,
    ExerciseRepository,
    WorkoutHistoryRepository,
    WorkoutFeedbackRepository,
    SettingsRepository,
)


@pytest.fixture
def db_file(tmp_path):
    return str(tmp_path / "workout.db")


@pytest.fixture
def user_id(db_file):
    return UserRepository(db_file).create("ana@example.com", "hash")


def test_db_url_overrides_path(tmp_path, monkeypatch):
    target = tmp_path / "from_url.db"
    monkeypatch.setenv("DB_URL", f"sqlite:///{target}")
    Database(str(tmp_path / "ignored.db"))
    assert target.exists()
    assert not (tmp_path / "ignored.db").exists()


def test_duplicate_email_rejected(db_file, user_id):
    users = UserRepository(db_file)
    with pytest.raises(ValueError, match="already registered"):
        users.create("ANA@example.com", "other")
    assert users.fetch_by_email(" ana@example.com ")[0] == user_id


def test_single_active_routine(db_file, user_id):
    routines = RoutineRepository(db_file)
    first = routines.create(user_id, "A")
    second = routines.create(user_id, "B")
    routines.set_active(user_id, first)
    routines.set_active(user_id, second)
    active = [r for r in routines.fetch_for_user(user_id) if r["is_active"]]
    assert [r["id"] for r in active] == [second]
    assert routines.fetch_active(user_id)["name"] == "B"


def test_set_active_rejects_foreign_routine(db_file, user_id):
    other = UserRepository(db_file).create("bob@example.com", "hash")
    routines = RoutineRepository(db_file)
    rid = routines.create(other, "Bob's")
    with pytest.raises(ValueError, match="routine not found"):
        routines.set_active(user_id, rid)
    with pytest.raises(ValueError, match="routine not found"):
        routines.set_active(user_id, 999)


def test_workout_day_validation(db_file, user_id):
    rid = RoutineRepository(db_file).create(user_id, "A", total_weeks=2)
    days = WorkoutDayRepository(db_file)
    with pytest.raises(ValueError):
        days.add(rid, 0, "Bad")
    with pytest.raises(ValueError):
        days.add(rid, 8, "Bad")
    with pytest.raises(ValueError, match="routine not found"):
        days.add(999, 1, "Orphan")
    days.add(rid, 3, "Pull", week_number=2)
    days.add(rid, 1, "Push")
    days.add(rid, 7, "Rest", is_rest_day=True)
    rows = days.fetch_for_routine(rid)
    assert [(r["week_number"], r["day_number"]) for r in rows] == [(1, 1), (1, 7), (2, 3)]
    assert rows[1]["is_rest_day"] is True
    assert len(days.fetch_for_routine(rid, week_number=2)) == 1


def test_routine_delete_cascades(db_file, user_id):
    routines = RoutineRepository(db_file)
    rid = routines.create(user_id, "A")
    did = WorkoutDayRepository(db_file).add(rid, 1, "Push")
    exercises = ExerciseRepository(db_file)
    exercises.add(did, "Bench", 3, "10")
    routines.delete(rid)
    assert exercises.fetch_for_day(did) == []
    with pytest.raises(ValueError):
        WorkoutDayRepository(db_file).fetch_detail(did)


def test_exercise_order_and_update(db_file, user_id):
    rid = RoutineRepository(db_file).create(user_id, "A")
    did = WorkoutDayRepository(db_file).add(rid, 1, "Push")
    exercises = ExerciseRepository(db_file)
    first = exercises.add(did, "Bench", 3, "10")
    second = exercises.add(did, "Fly", 3, "12")
    exercises.add(did, "Warmup", 1, "15", exercise_order=0)
    names = [e["name"] for e in exercises.fetch_for_day(did)]
    assert names == ["Warmup", "Bench", "Fly"]
    assert exercises.fetch_detail(second)["exercise_order"] == 2
    exercises.update(first, weight_kg=80.5, reps="8")
    detail = exercises.fetch_detail(first)
    assert detail["weight_kg"] == 80.5
    assert detail["reps"] == "8"
    with pytest.raises(ValueError, match="unknown exercise field"):
        exercises.update(first, colour="red")
    assert exercises.count_for_day(did) == 3
    exercises.remove(first)
    assert exercises.count_for_day(did) == 2
    with pytest.raises(ValueError, match="exercise not found"):
        exercises.remove(first)


def test_history_validation_and_order(db_file, user_id):
    history = WorkoutHistoryRepository(db_file)
    with pytest.raises(ValueError, match="invalid date"):
        history.record(user_id, "10/06/2024", "Push")
    with pytest.raises(ValueError):
        history.record(user_id, "2024-06-10", "  ")
    with pytest.raises(ValueError):
        history.record(user_id, "2024-06-10", "Push", -1)
    with pytest.raises(ValueError):
        history.record(user_id, "2024-06-10", "Push", 30, 5, 4)
    history.record(user_id, "2024-06-08", "Legs", 50, 4, 4)
    history.record(user_id, "2024-06-10", "Push", 45, 3, 4)
    history.record(user_id, "2024-06-09", "Pull", 40, 4, 4)
    rows = history.fetch_for_user(user_id)
    assert [r["workout_date"] for r in rows] == ["2024-06-10", "2024-06-09", "2024-06-08"]
    ranged = history.fetch_for_user(user_id, "2024-06-09", "2024-06-09")
    assert [r["workout_name"] for r in ranged] == ["Pull"]
    history.delete_for_user(user_id)
    assert history.fetch_for_user(user_id) == []


def test_feedback_levels(db_file, user_id):
    hid = WorkoutHistoryRepository(db_file).record(user_id, "2024-06-10", "Push")
    feedback = WorkoutFeedbackRepository(db_file)
    with pytest.raises(ValueError, match="fatigue_level"):
        feedback.add(user_id, hid, fatigue_level=11)
    with pytest.raises(ValueError, match="workout history not found"):
        feedback.add(user_id, 999, pain_level=2)
    feedback.add(user_id, hid, 6, 1, 8, "felt strong")
    rows = feedback.fetch_for_history(hid)
    assert rows[0]["performance_rating"] == 8
    assert rows[0]["notes"] == "felt strong"


def test_profile_update(db_file, user_id):
    profiles = ProfileRepository(db_file)
    profiles.ensure(user_id, "ana@example.com", "ana")
    profiles.update(user_id, age=31, goal="strength")
    profile = profiles.fetch(user_id)
    assert profile["age"] == 31
    assert profile["has_avatar"] is False
    with pytest.raises(ValueError, match="unknown profile field"):
        profiles.update(user_id, password="x")
    with pytest.raises(ValueError, match="profile not found"):
        profiles.fetch(999)


def test_settings_yaml_sync(tmp_path):
    db_file = str(tmp_path / "workout.db")
    yaml_file = str(tmp_path / "settings.yaml")
    settings = SettingsRepository(db_file, yaml_file)
    assert settings.get_float("refresh_interval_seconds", 0) == 30.0
    assert settings.get_bool("auto_refresh_enabled", False) is True
    settings.set_int("default_rest_seconds", 90)
    reloaded = SettingsRepository(db_file, yaml_file)
    assert reloaded.get_int("default_rest_seconds", 60) == 90
    assert reloaded.all_settings()["timezone"] == "UTC"


def test_settings_yaml_validation(tmp_path):
    yaml_file = tmp_path / "settings.yaml"
    yaml_file.write_text("refresh_interval_seconds: -5\n", encoding="utf-8")
    with pytest.raises(ValueError):
        SettingsRepository(str(tmp_path / "workout.db"), str(yaml_file))


def test_schema_migration_adds_columns(tmp_path):
    db_file = tmp_path / "old.db"
    conn = sqlite3.connect(str(db_file))
    conn.execute(
        "CREATE TABLE workout_days (id INTEGER PRIMARY KEY AUTOINCREMENT, routine_id INTEGER, day_number INTEGER, day_name TEXT)"
    )
    conn.execute("INSERT INTO workout_days (routine_id, day_number, day_name) VALUES (1, 2, 'Pull')")
    conn.execute("CREATE TABLE workout_days_old (id INTEGER)")
    conn.commit()
    conn.close()

    Database(str(db_file))

    conn = sqlite3.connect(str(db_file))
    assert conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='workout_days_old'"
    ).fetchone() is None
    row = conn.execute(
        "SELECT day_name, week_number, is_rest_day FROM workout_days"
    ).fetchone()
    assert row == ("Pull", 1, 0)
    conn.close()


def test_numeric_looking_text_settings_stay_text(tmp_path):
    db_file = str(tmp_path / "workout.db")
    yaml_file = str(tmp_path / "settings.yaml")
    settings = SettingsRepository(db_file, yaml_file)
    settings.set_text("language", "1")
    settings.set_text("weight_unit", "2.5")
    reloaded = SettingsRepository(db_file, yaml_file)
    assert reloaded.get_text("language", "pt") == "1"
    data = reloaded.all_settings()
    assert data["language"] == "1"
    assert data["weight_unit"] == "2.5"
    assert data["default_rest_seconds"] == 60
    assert data["refresh_interval_seconds"] == 30.0


def test_all_settings_hides_password_pepper(tmp_path):
    yaml_file = tmp_path / "settings.yaml"
    yaml_file.write_text("password_pepper: s3cr3t-pepper\n", encoding="utf-8")
    settings = SettingsRepository(str(tmp_path / "workout.db"), str(yaml_file))
    assert settings.get_text("password_pepper", "") == "s3cr3t-pepper"
    assert "password_pepper" not in settings.all_settings()
