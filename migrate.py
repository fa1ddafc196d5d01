import sqlite3
import sys

def migrate(db_path='workout.db'):
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    cur.execute("PRAGMA table_info(workout_routines);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'total_weeks' not in cols:
        cur.execute("ALTER TABLE workout_routines ADD COLUMN total_weeks INTEGER NOT NULL DEFAULT 1;")
    cur.execute("PRAGMA table_info(workout_days);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'week_number' not in cols:
        cur.execute("ALTER TABLE workout_days ADD COLUMN week_number INTEGER NOT NULL DEFAULT 1;")
    cur.execute("PRAGMA table_info(exercises);")
    cols = [r[1] for r in cur.fetchall()]
    for col in ('warmup_sets', 'prep_sets', 'working_sets', 'working_reps'):
        if cols and col not in cols:
            cur.execute(f"ALTER TABLE exercises ADD COLUMN {col} TEXT;")
    cur.execute("PRAGMA table_info(profiles);")
    cols = [r[1] for r in cur.fetchall()]
    if cols and 'avatar' not in cols:
        cur.execute("ALTER TABLE profiles ADD COLUMN avatar BLOB;")
    cur.execute("PRAGMA table_info(workout_feedback);")
    if not cur.fetchall():
        cur.execute(
            "CREATE TABLE workout_feedback (id INTEGER PRIMARY KEY AUTOINCREMENT, user_id INTEGER NOT NULL, "
            "workout_history_id INTEGER, fatigue_level INTEGER, pain_level INTEGER, performance_rating INTEGER, "
            "notes TEXT, created_at TEXT);"
        )
    conn.commit()
    conn.close()

if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else 'workout.db'
    migrate(path)
