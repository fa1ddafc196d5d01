import csv
import os
import sys
import unittest
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import (
    export_history,
    backup_db,
    restore_db,
    demo_data,
    import_exercises,
    print_stats,
)
from rest_api import FitAPI


class CLIToolsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        self.yaml_path = "test_cli.yaml"
        self.txt_path = "test_cli_exercises.txt"
        self._cleanup()

    def tearDown(self) -> None:
        self._cleanup()

    def _cleanup(self) -> None:
        for path in [self.db_path, self.yaml_path, self.txt_path, "backup.db", "history_export.csv"]:
            if os.path.exists(path):
                os.remove(path)

    def test_demo_data_and_stats(self) -> None:
        uid = demo_data(self.db_path, self.yaml_path)
        self.assertIsNotNone(uid)
        self.assertIsNone(demo_data(self.db_path, self.yaml_path))
        api = FitAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.assertEqual(api.routines.fetch_active(uid)["name"], "Push Pull Legs")
        data = print_stats(self.db_path, self.yaml_path, "demo@example.com")
        self.assertEqual(data["weekly_planned"], 3)
        self.assertEqual(data["current_streak"], 1)
        self.assertIsNotNone(data["next_workout"])

    def test_export_backup_restore(self) -> None:
        demo_data(self.db_path, self.yaml_path)
        count = export_history(self.db_path, "demo@example.com", "history_export.csv")
        self.assertEqual(count, 3)
        with open("history_export.csv", newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        self.assertEqual(rows[0]["workout_name"], "Legs")
        backup_db(self.db_path, "backup.db")
        self.assertTrue(os.path.exists("backup.db"))
        os.remove(self.db_path)
        restore_db("backup.db", self.db_path)
        self.assertTrue(os.path.exists(self.db_path))
        with self.assertRaises(ValueError):
            export_history(self.db_path, "nobody@example.com", "history_export.csv")

    def test_import_exercises(self) -> None:
        uid = demo_data(self.db_path, self.yaml_path)
        api = FitAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        routine = api.routines.fetch_active(uid)
        push = api.days.fetch_for_routine(routine["id"])[0]
        with open(self.txt_path, "w", encoding="utf-8") as f:
            f.write("Dips | - | 1x8 | 3x10 | 10\n")
        ids = import_exercises(self.db_path, self.txt_path, push["id"], self.yaml_path)
        self.assertEqual(len(ids), 1)
        exercises = api.exercises.fetch_for_day(push["id"])
        self.assertEqual(exercises[-1]["name"], "Dips")
        self.assertEqual(exercises[-1]["sets"], 4)


if __name__ == "__main__":
    unittest.main()
