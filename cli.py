import argparse
import csv
import datetime
import json
import logging
import shutil
import time
from typing import Optional

import requests

from db import UserRepository, WorkoutHistoryRepository
from exercise_parser import ExerciseTextParser
from rest_api import FitAPI

logger = logging.getLogger(__name__)


def _user_id(api: FitAPI, email: str) -> int:
    row = api.users.fetch_by_email(email)
    if row is None:
        raise ValueError(f"user not found: {email}")
    return int(row[0])


def export_history(db_path: str, email: str, out_path: str) -> int:
    """Write the workout history of ``email`` to ``out_path`` as CSV."""
    users = UserRepository(db_path)
    row = users.fetch_by_email(email)
    if row is None:
        raise ValueError(f"user not found: {email}")
    rows = WorkoutHistoryRepository(db_path).fetch_for_user(int(row[0]))
    fields = [
        "workout_date",
        "workout_name",
        "duration_minutes",
        "exercises_completed",
        "total_exercises",
    ]
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fields, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)
    logger.info("exported %d sessions to %s", len(rows), out_path)
    return len(rows)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def print_stats(
    db_path: str, yaml_path: str, email: str, today: Optional[str] = None
) -> dict:
    api = FitAPI(db_path=db_path, yaml_path=yaml_path)
    uid = _user_id(api, email)
    day = datetime.date.fromisoformat(today) if today else None
    report = api.statistics.adherence(uid, day)
    data = report.model_dump(mode="json")
    data["next_workout"] = api.statistics.next_workout(uid, day)
    print(json.dumps(data, indent=2))
    return data


def import_exercises(
    db_path: str, txt_path: str, day_id: int, yaml_path: str = "settings.yaml"
) -> list[int]:
    """Parse ``txt_path`` and append its exercises to workout day ``day_id``."""
    api = FitAPI(db_path=db_path, yaml_path=yaml_path)
    parsed = ExerciseTextParser.parse_file(txt_path)
    records = ExerciseTextParser.to_exercise_records(
        parsed,
        api.settings.get_int("default_rest_seconds", 60),
        api.exercises.count_for_day(day_id) + 1,
    )
    ids = api.exercises.bulk_add(day_id, records)
    logger.info("imported %d exercises into day %s", len(ids), day_id)
    return ids


def benchmark(url: str, runs: int = 10) -> None:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5)
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def demo_data(
    db_path: str,
    yaml_path: str,
    email: str = "demo@example.com",
    password: str = "demo123",
) -> Optional[int]:
    """Create a demo account with an active routine and recent sessions."""
    api = FitAPI(db_path=db_path, yaml_path=yaml_path)
    if api.users.fetch_by_email(email) is not None:
        print("Demo user already exists")
        return None
    uid = api.auth.sign_up(email, password, "Demo")
    rid = api.routines.create(uid, "Push Pull Legs", "Three day split")
    plan = [
        (1, "Push", [("Bench Press", 4, "8-10", 60.0), ("Overhead Press", 3, "10", 30.0)]),
        (3, "Pull", [("Barbell Row", 4, "8-10", 50.0), ("Pull Up", 3, "8", None)]),
        (5, "Legs", [("Squat", 4, "6-8", 80.0), ("Romanian Deadlift", 3, "10", 60.0)]),
    ]
    for day_number, name, exercises in plan:
        did = api.days.add(rid, day_number, name)
        for ex_name, sets, reps, weight in exercises:
            api.exercises.add(did, ex_name, sets, reps, weight_kg=weight)
    api.days.add(rid, 7, "Rest", is_rest_day=True)
    api.routines.set_active(uid, rid)
    today = datetime.date.today()
    for offset, name in ((1, "Legs"), (3, "Pull"), (5, "Push")):
        api.history.record(
            uid,
            (today - datetime.timedelta(days=offset)).isoformat(),
            name,
            45,
            2,
            2,
        )
    print("Demo data inserted")
    return uid


def main() -> None:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    stats = sub.add_parser("stats")
    stats.add_argument("--db", default="workout.db")
    stats.add_argument("--yaml", default="settings.yaml")
    stats.add_argument("--email", required=True)
    stats.add_argument("--today")

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="workout.db")
    exp.add_argument("--email", required=True)
    exp.add_argument("--out", default="history.csv")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="workout.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="workout.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="workout.db")
    demo.add_argument("--yaml", default="settings.yaml")

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    imp = sub.add_parser("import_exercises")
    imp.add_argument("--file", required=True)
    imp.add_argument("--day", type=int, required=True)
    imp.add_argument("--db", default="workout.db")
    imp.add_argument("--yaml", default="settings.yaml")

    args = parser.parse_args()

    try:
        if args.cmd == "stats":
            print_stats(args.db, args.yaml, args.email, args.today)
        elif args.cmd == "export":
            export_history(args.db, args.email, args.out)
        elif args.cmd == "backup":
            backup_db(args.db, args.out)
        elif args.cmd == "restore":
            restore_db(args.src, args.db)
        elif args.cmd == "demo":
            demo_data(args.db, args.yaml)
        elif args.cmd == "benchmark":
            benchmark(args.url, args.runs)
        elif args.cmd == "import_exercises":
            import_exercises(args.db, args.file, args.day, args.yaml)
    except ValueError as e:
        logger.error("%s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
