import sqlite3
import aiosqlite
import datetime
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig, APP_VERSION, database_path
from settings_schema import validate_settings


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _parse_date(value: str) -> str:
    """Return ``value`` normalised to ``YYYY-MM-DD`` or raise ``ValueError``."""
    try:
        return datetime.date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValueError(f"invalid date: {value}")


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "users": (
            """CREATE TABLE users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );""",
            ["id", "email", "password_hash", "created_at"],
        ),
        "auth_sessions": (
            """CREATE TABLE auth_sessions (
                    token TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            ["token", "user_id", "created_at", "expires_at"],
        ),
        "profiles": (
            """CREATE TABLE profiles (
                    user_id INTEGER PRIMARY KEY,
                    name TEXT,
                    email TEXT,
                    age INTEGER,
                    height REAL,
                    weight REAL,
                    goal TEXT,
                    experience_level TEXT,
                    avatar BLOB,
                    updated_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "user_id",
                "name",
                "email",
                "age",
                "height",
                "weight",
                "goal",
                "experience_level",
                "avatar",
                "updated_at",
            ],
        ),
        "workout_routines": (
            """CREATE TABLE workout_routines (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    total_weeks INTEGER NOT NULL DEFAULT 1,
                    is_active INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "name",
                "description",
                "total_weeks",
                "is_active",
                "created_at",
                "updated_at",
            ],
        ),
        "workout_days": (
            """CREATE TABLE workout_days (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    routine_id INTEGER NOT NULL,
                    week_number INTEGER NOT NULL DEFAULT 1,
                    day_number INTEGER NOT NULL,
                    day_name TEXT NOT NULL,
                    is_rest_day INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    FOREIGN KEY(routine_id) REFERENCES workout_routines(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "routine_id",
                "week_number",
                "day_number",
                "day_name",
                "is_rest_day",
                "created_at",
            ],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_day_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    sets INTEGER NOT NULL,
                    reps TEXT NOT NULL,
                    weight_kg REAL,
                    rest_seconds INTEGER,
                    video_url TEXT,
                    execution_notes TEXT,
                    exercise_order INTEGER NOT NULL DEFAULT 0,
                    warmup_sets TEXT,
                    prep_sets TEXT,
                    working_sets TEXT,
                    working_reps TEXT,
                    created_at TEXT,
                    FOREIGN KEY(workout_day_id) REFERENCES workout_days(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_day_id",
                "name",
                "sets",
                "reps",
                "weight_kg",
                "rest_seconds",
                "video_url",
                "execution_notes",
                "exercise_order",
                "warmup_sets",
                "prep_sets",
                "working_sets",
                "working_reps",
                "created_at",
            ],
        ),
        "workout_history": (
            """CREATE TABLE workout_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    workout_date TEXT NOT NULL,
                    workout_name TEXT NOT NULL,
                    duration_minutes INTEGER NOT NULL DEFAULT 0,
                    exercises_completed INTEGER NOT NULL DEFAULT 0,
                    total_exercises INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "workout_date",
                "workout_name",
                "duration_minutes",
                "exercises_completed",
                "total_exercises",
                "created_at",
            ],
        ),
        "workout_feedback": (
            """CREATE TABLE workout_feedback (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    workout_history_id INTEGER,
                    fatigue_level INTEGER,
                    pain_level INTEGER,
                    performance_rating INTEGER,
                    notes TEXT,
                    created_at TEXT,
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE,
                    FOREIGN KEY(workout_history_id) REFERENCES workout_history(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "user_id",
                "workout_history_id",
                "fatigue_level",
                "pain_level",
                "performance_rating",
                "notes",
                "created_at",
            ],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = "workout.db", db_url: str | None = None) -> None:
        self._db_path = database_path(db_path, db_url)
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col in ("week_number", "total_weeks"):
                        return "1"
                    if col in (
                        "is_active",
                        "is_rest_day",
                        "exercise_order",
                        "duration_minutes",
                        "exercises_completed",
                        "total_exercises",
                    ):
                        return "0"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "timezone": "UTC",
            "language": "pt",
            "weight_unit": "kg",
            "refresh_interval_seconds": "30",
            "default_rest_seconds": "60",
            "session_ttl_days": "30",
            "auto_refresh_enabled": "1",
            "app_version": APP_VERSION,
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            names = [c[0] for c in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]

    def _exists(self, table: str, row_id: int) -> bool:
        rows = self.fetch_all(f"SELECT 1 FROM {table} WHERE id = ?;", (row_id,))
        return bool(rows)

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows

    async def _delete_all(self, table: str) -> None:
        await self.execute(f"DELETE FROM {table};")


class UserRepository(BaseRepository):
    """Repository for registered accounts."""

    def create(self, email: str, password_hash: str) -> int:
        email = email.strip().lower()
        if self.fetch_by_email(email) is not None:
            raise ValueError("email already registered")
        return self.execute(
            "INSERT INTO users (email, password_hash, created_at) VALUES (?, ?, ?);",
            (email, password_hash, _now()),
        )

    def fetch_by_email(self, email: str) -> Optional[Tuple[int, str, str]]:
        rows = self.fetch_all(
            "SELECT id, email, password_hash FROM users WHERE email = ?;",
            (email.strip().lower(),),
        )
        return rows[0] if rows else None

    def fetch_detail(self, user_id: int) -> Tuple[int, str]:
        rows = self.fetch_all(
            "SELECT id, email FROM users WHERE id = ?;", (user_id,)
        )
        if not rows:
            raise ValueError("user not found")
        return rows[0]


class AuthSessionRepository(BaseRepository):
    """Repository for issued sign-in tokens."""

    def add(self, token: str, user_id: int, expires_at: str) -> None:
        self.execute(
            "INSERT INTO auth_sessions (token, user_id, created_at, expires_at) VALUES (?, ?, ?, ?);",
            (token, user_id, _now(), expires_at),
        )

    def fetch_user_id(self, token: str, now: str | None = None) -> Optional[int]:
        rows = self.fetch_all(
            "SELECT user_id FROM auth_sessions WHERE token = ? AND expires_at > ?;",
            (token, now or _now()),
        )
        return int(rows[0][0]) if rows else None

    def delete(self, token: str) -> None:
        self.execute("DELETE FROM auth_sessions WHERE token = ?;", (token,))

    def delete_expired(self, now: str | None = None) -> None:
        self.execute(
            "DELETE FROM auth_sessions WHERE expires_at <= ?;", (now or _now(),)
        )


class ProfileRepository(BaseRepository):
    """Repository for user profiles and avatars."""

    _FIELDS = {"name", "email", "age", "height", "weight", "goal", "experience_level"}

    def ensure(self, user_id: int, email: str | None = None, name: str | None = None) -> None:
        self.execute(
            "INSERT OR IGNORE INTO profiles (user_id, email, name, updated_at) VALUES (?, ?, ?, ?);",
            (user_id, email, name, _now()),
        )

    def fetch(self, user_id: int) -> dict:
        rows = self._fetch_dicts(
            "SELECT user_id, name, email, age, height, weight, goal, experience_level, "
            "avatar IS NOT NULL AS has_avatar, updated_at FROM profiles WHERE user_id = ?;",
            (user_id,),
        )
        if not rows:
            raise ValueError("profile not found")
        profile = rows[0]
        profile["has_avatar"] = bool(profile["has_avatar"])
        return profile

    def update(self, user_id: int, **fields) -> None:
        unknown = set(fields) - self._FIELDS
        if unknown:
            raise ValueError(f"unknown profile field: {sorted(unknown)[0]}")
        self.fetch(user_id)
        if not fields:
            return
        assignments = ", ".join(f"{k} = ?" for k in fields)
        self.execute(
            f"UPDATE profiles SET {assignments}, updated_at = ? WHERE user_id = ?;",
            (*fields.values(), _now(), user_id),
        )

    def set_avatar(self, user_id: int, data: bytes | None) -> None:
        self.fetch(user_id)
        self.execute(
            "UPDATE profiles SET avatar = ?, updated_at = ? WHERE user_id = ?;",
            (data, _now(), user_id),
        )

    def get_avatar(self, user_id: int) -> bytes | None:
        rows = self.fetch_all(
            "SELECT avatar FROM profiles WHERE user_id = ?;", (user_id,)
        )
        return bytes(rows[0][0]) if rows and rows[0][0] is not None else None


class RoutineRepository(BaseRepository):
    """Repository for workout routines."""

    _COLUMNS = "id, user_id, name, description, total_weeks, is_active, created_at, updated_at"

    @staticmethod
    def _normalize(row: dict) -> dict:
        row["is_active"] = bool(row["is_active"])
        return row

    def create(
        self,
        user_id: int,
        name: str,
        description: str | None = None,
        total_weeks: int = 1,
    ) -> int:
        if not name or not name.strip():
            raise ValueError("name required")
        if total_weeks < 1:
            raise ValueError("total_weeks must be at least 1")
        return self.execute(
            "INSERT INTO workout_routines (user_id, name, description, total_weeks, is_active, created_at) "
            "VALUES (?, ?, ?, ?, 0, ?);",
            (user_id, name.strip(), description, total_weeks, _now()),
        )

    def fetch_for_user(self, user_id: int) -> List[dict]:
        rows = self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM workout_routines WHERE user_id = ? "
            "ORDER BY created_at DESC, id DESC;",
            (user_id,),
        )
        return [self._normalize(r) for r in rows]

    def fetch_detail(self, routine_id: int) -> dict:
        rows = self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM workout_routines WHERE id = ?;",
            (routine_id,),
        )
        if not rows:
            raise ValueError("routine not found")
        return self._normalize(rows[0])

    def fetch_active(self, user_id: int) -> Optional[dict]:
        rows = self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM workout_routines WHERE user_id = ? AND is_active = 1 "
            "ORDER BY id LIMIT 1;",
            (user_id,),
        )
        return self._normalize(rows[0]) if rows else None

    def set_active(self, user_id: int, routine_id: int) -> None:
        """Deactivate every routine of ``user_id`` then activate ``routine_id``."""
        routine = self.fetch_detail(routine_id)
        if routine["user_id"] != user_id:
            raise ValueError("routine not found")
        with self._connection() as conn:
            conn.execute(
                "UPDATE workout_routines SET is_active = 0 WHERE user_id = ?;",
                (user_id,),
            )
            conn.execute(
                "UPDATE workout_routines SET is_active = 1, updated_at = ? WHERE id = ?;",
                (_now(), routine_id),
            )

    def update(
        self,
        routine_id: int,
        name: str | None = None,
        description: str | None = None,
        total_weeks: int | None = None,
    ) -> None:
        self.fetch_detail(routine_id)
        if name is not None:
            if not name.strip():
                raise ValueError("name required")
            self.execute(
                "UPDATE workout_routines SET name = ? WHERE id = ?;",
                (name.strip(), routine_id),
            )
        if description is not None:
            self.execute(
                "UPDATE workout_routines SET description = ? WHERE id = ?;",
                (description, routine_id),
            )
        if total_weeks is not None:
            if total_weeks < 1:
                raise ValueError("total_weeks must be at least 1")
            self.execute(
                "UPDATE workout_routines SET total_weeks = ? WHERE id = ?;",
                (total_weeks, routine_id),
            )
        self.execute(
            "UPDATE workout_routines SET updated_at = ? WHERE id = ?;",
            (_now(), routine_id),
        )

    def delete(self, routine_id: int) -> None:
        if not self._exists("workout_routines", routine_id):
            raise ValueError("routine not found")
        self.execute("DELETE FROM workout_routines WHERE id = ?;", (routine_id,))


class WorkoutDayRepository(BaseRepository):
    """Repository for the days of a routine's weekly cycle."""

    _COLUMNS = "id, routine_id, week_number, day_number, day_name, is_rest_day"

    @staticmethod
    def _normalize(row: dict) -> dict:
        row["is_rest_day"] = bool(row["is_rest_day"])
        return row

    def add(
        self,
        routine_id: int,
        day_number: int,
        day_name: str,
        week_number: int = 1,
        is_rest_day: bool = False,
    ) -> int:
        if not 1 <= day_number <= 7:
            raise ValueError("day_number must be between 1 and 7")
        if week_number < 1:
            raise ValueError("week_number must be at least 1")
        if not day_name or not day_name.strip():
            raise ValueError("day_name required")
        if not self._exists("workout_routines", routine_id):
            raise ValueError("routine not found")
        return self.execute(
            "INSERT INTO workout_days (routine_id, week_number, day_number, day_name, is_rest_day, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (routine_id, week_number, day_number, day_name.strip(), int(is_rest_day), _now()),
        )

    def fetch_for_routine(
        self, routine_id: int, week_number: int | None = None
    ) -> List[dict]:
        query = f"SELECT {self._COLUMNS} FROM workout_days WHERE routine_id = ?"
        params: list[int] = [routine_id]
        if week_number is not None:
            query += " AND week_number = ?"
            params.append(week_number)
        query += " ORDER BY week_number ASC, day_number ASC, id ASC;"
        return [self._normalize(r) for r in self._fetch_dicts(query, tuple(params))]

    def fetch_detail(self, day_id: int) -> dict:
        rows = self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM workout_days WHERE id = ?;", (day_id,)
        )
        if not rows:
            raise ValueError("workout day not found")
        return self._normalize(rows[0])

    def update(
        self,
        day_id: int,
        day_name: str | None = None,
        is_rest_day: bool | None = None,
    ) -> None:
        self.fetch_detail(day_id)
        if day_name is not None:
            if not day_name.strip():
                raise ValueError("day_name required")
            self.execute(
                "UPDATE workout_days SET day_name = ? WHERE id = ?;",
                (day_name.strip(), day_id),
            )
        if is_rest_day is not None:
            self.execute(
                "UPDATE workout_days SET is_rest_day = ? WHERE id = ?;",
                (int(is_rest_day), day_id),
            )

    def delete(self, day_id: int) -> None:
        if not self._exists("workout_days", day_id):
            raise ValueError("workout day not found")
        self.execute("DELETE FROM workout_days WHERE id = ?;", (day_id,))


class ExerciseRepository(BaseRepository):
    """Repository for exercises assigned to workout days."""

    _COLUMNS = (
        "id, workout_day_id, name, sets, reps, weight_kg, rest_seconds, video_url, "
        "execution_notes, exercise_order, warmup_sets, prep_sets, working_sets, working_reps"
    )
    _UPDATABLE = {
        "name",
        "sets",
        "reps",
        "weight_kg",
        "rest_seconds",
        "video_url",
        "execution_notes",
        "exercise_order",
        "warmup_sets",
        "prep_sets",
        "working_sets",
        "working_reps",
    }

    def add(
        self,
        workout_day_id: int,
        name: str,
        sets: int,
        reps: str,
        weight_kg: float | None = None,
        rest_seconds: int | None = 60,
        video_url: str | None = None,
        execution_notes: str | None = None,
        exercise_order: int | None = None,
        warmup_sets: str | None = None,
        prep_sets: str | None = None,
        working_sets: str | None = None,
        working_reps: str | None = None,
    ) -> int:
        if not name or not name.strip():
            raise ValueError("name required")
        if sets < 1:
            raise ValueError("sets must be at least 1")
        if rest_seconds is not None and rest_seconds < 0:
            raise ValueError("rest_seconds must be non-negative")
        if not self._exists("workout_days", workout_day_id):
            raise ValueError("workout day not found")
        if exercise_order is None:
            rows = self.fetch_all(
                "SELECT COALESCE(MAX(exercise_order),0)+1 FROM exercises WHERE workout_day_id = ?;",
                (workout_day_id,),
            )
            exercise_order = int(rows[0][0]) if rows else 1
        return self.execute(
            "INSERT INTO exercises (workout_day_id, name, sets, reps, weight_kg, rest_seconds, video_url, "
            "execution_notes, exercise_order, warmup_sets, prep_sets, working_sets, working_reps, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                workout_day_id,
                name.strip(),
                sets,
                str(reps),
                weight_kg,
                rest_seconds,
                video_url,
                execution_notes,
                exercise_order,
                warmup_sets,
                prep_sets,
                working_sets,
                working_reps,
                _now(),
            ),
        )

    def bulk_add(self, workout_day_id: int, records: Iterable[dict]) -> list[int]:
        ids: list[int] = []
        for rec in records:
            data = {k: v for k, v in rec.items() if k != "workout_day_id"}
            ids.append(self.add(workout_day_id, **data))
        return ids

    def fetch_for_day(self, workout_day_id: int) -> List[dict]:
        return self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM exercises WHERE workout_day_id = ? "
            "ORDER BY exercise_order ASC, id ASC;",
            (workout_day_id,),
        )

    def fetch_for_days(self, day_ids: Iterable[int]) -> List[dict]:
        ids = list(day_ids)
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        return self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM exercises WHERE workout_day_id IN ({placeholders}) "
            "ORDER BY exercise_order ASC, id ASC;",
            tuple(ids),
        )

    def count_for_day(self, workout_day_id: int) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM exercises WHERE workout_day_id = ?;",
            (workout_day_id,),
        )
        return int(rows[0][0]) if rows else 0

    def fetch_detail(self, exercise_id: int) -> dict:
        rows = self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM exercises WHERE id = ?;", (exercise_id,)
        )
        if not rows:
            raise ValueError("exercise not found")
        return rows[0]

    def update(self, exercise_id: int, **fields) -> None:
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"unknown exercise field: {sorted(unknown)[0]}")
        self.fetch_detail(exercise_id)
        if "sets" in fields and fields["sets"] < 1:
            raise ValueError("sets must be at least 1")
        if "name" in fields and not str(fields["name"]).strip():
            raise ValueError("name required")
        if not fields:
            return
        assignments = ", ".join(f"{k} = ?" for k in fields)
        self.execute(
            f"UPDATE exercises SET {assignments} WHERE id = ?;",
            (*fields.values(), exercise_id),
        )

    def remove(self, exercise_id: int) -> None:
        if not self._exists("exercises", exercise_id):
            raise ValueError("exercise not found")
        self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))


class WorkoutHistoryRepository(BaseRepository):
    """Repository for completed workout sessions."""

    _COLUMNS = (
        "id, user_id, workout_date, workout_name, duration_minutes, "
        "exercises_completed, total_exercises, created_at"
    )

    @staticmethod
    def _validate(
        workout_date: str,
        workout_name: str,
        duration_minutes: int,
        exercises_completed: int,
        total_exercises: int,
    ) -> str:
        date = _parse_date(workout_date)
        if not workout_name or not workout_name.strip():
            raise ValueError("workout_name required")
        if duration_minutes < 0 or exercises_completed < 0 or total_exercises < 0:
            raise ValueError("values must be non-negative")
        if exercises_completed > total_exercises:
            raise ValueError("exercises_completed exceeds total_exercises")
        return date

    def record(
        self,
        user_id: int,
        workout_date: str,
        workout_name: str,
        duration_minutes: int = 0,
        exercises_completed: int = 0,
        total_exercises: int = 0,
    ) -> int:
        date = self._validate(
            workout_date,
            workout_name,
            duration_minutes,
            exercises_completed,
            total_exercises,
        )
        return self.execute(
            "INSERT INTO workout_history (user_id, workout_date, workout_name, duration_minutes, "
            "exercises_completed, total_exercises, created_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                date,
                workout_name.strip(),
                duration_minutes,
                exercises_completed,
                total_exercises,
                _now(),
            ),
        )

    def fetch_for_user(
        self,
        user_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[dict]:
        query = f"SELECT {self._COLUMNS} FROM workout_history WHERE user_id = ?"
        params: list[str | int] = [user_id]
        if start_date:
            query += " AND workout_date >= ?"
            params.append(_parse_date(start_date))
        if end_date:
            query += " AND workout_date <= ?"
            params.append(_parse_date(end_date))
        query += " ORDER BY workout_date DESC, id DESC;"
        return self._fetch_dicts(query, tuple(params))

    def fetch_detail(self, history_id: int) -> dict:
        rows = self._fetch_dicts(
            f"SELECT {self._COLUMNS} FROM workout_history WHERE id = ?;",
            (history_id,),
        )
        if not rows:
            raise ValueError("workout history not found")
        return rows[0]

    def delete(self, history_id: int) -> None:
        if not self._exists("workout_history", history_id):
            raise ValueError("workout history not found")
        self.execute("DELETE FROM workout_history WHERE id = ?;", (history_id,))

    def delete_for_user(self, user_id: int) -> None:
        self.execute("DELETE FROM workout_history WHERE user_id = ?;", (user_id,))


class AsyncWorkoutHistoryRepository(AsyncBaseRepository):
    """Async repository for completed workout sessions."""

    async def record(
        self,
        user_id: int,
        workout_date: str,
        workout_name: str,
        duration_minutes: int = 0,
        exercises_completed: int = 0,
        total_exercises: int = 0,
    ) -> int:
        date = WorkoutHistoryRepository._validate(
            workout_date,
            workout_name,
            duration_minutes,
            exercises_completed,
            total_exercises,
        )
        return await self.execute(
            "INSERT INTO workout_history (user_id, workout_date, workout_name, duration_minutes, "
            "exercises_completed, total_exercises, created_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                date,
                workout_name.strip(),
                duration_minutes,
                exercises_completed,
                total_exercises,
                _now(),
            ),
        )

    async def fetch_for_user(self, user_id: int) -> List[dict]:
        rows = await self.fetch_all(
            "SELECT id, workout_date, workout_name, duration_minutes, exercises_completed, total_exercises "
            "FROM workout_history WHERE user_id = ? ORDER BY workout_date DESC, id DESC;",
            (user_id,),
        )
        return [
            {
                "id": r[0],
                "workout_date": r[1],
                "workout_name": r[2],
                "duration_minutes": r[3],
                "exercises_completed": r[4],
                "total_exercises": r[5],
            }
            for r in rows
        ]

    async def delete_for_user(self, user_id: int) -> None:
        await self.execute(
            "DELETE FROM workout_history WHERE user_id = ?;", (user_id,)
        )


class WorkoutFeedbackRepository(BaseRepository):
    """Repository for post-workout feedback."""

    def add(
        self,
        user_id: int,
        workout_history_id: int | None,
        fatigue_level: int | None = None,
        pain_level: int | None = None,
        performance_rating: int | None = None,
        notes: str | None = None,
    ) -> int:
        for label, value in (
            ("fatigue_level", fatigue_level),
            ("pain_level", pain_level),
            ("performance_rating", performance_rating),
        ):
            if value is not None and not 1 <= value <= 10:
                raise ValueError(f"{label} must be between 1 and 10")
        if workout_history_id is not None and not self._exists(
            "workout_history", workout_history_id
        ):
            raise ValueError("workout history not found")
        return self.execute(
            "INSERT INTO workout_feedback (user_id, workout_history_id, fatigue_level, pain_level, "
            "performance_rating, notes, created_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                workout_history_id,
                fatigue_level,
                pain_level,
                performance_rating,
                notes,
                _now(),
            ),
        )

    def fetch_for_history(self, workout_history_id: int) -> List[dict]:
        return self._fetch_dicts(
            "SELECT id, user_id, workout_history_id, fatigue_level, pain_level, performance_rating, notes "
            "FROM workout_feedback WHERE workout_history_id = ? ORDER BY id;",
            (workout_history_id,),
        )


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    BOOL_KEYS = {"auto_refresh_enabled"}
    FLOAT_KEYS = {"refresh_interval_seconds"}
    INT_KEYS = {"default_rest_seconds", "session_ttl_days"}

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | int | str | bool] = {}
        for k, v in rows:
            if k in self.BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
                continue
            try:
                if k in self.FLOAT_KEYS:
                    result[k] = float(v)
                    continue
                if k in self.INT_KEYS:
                    result[k] = int(float(v))
                    continue
            except ValueError:
                pass
            result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                val = str(value)
                if key in self.BOOL_KEYS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_float(self, key: str, default: float) -> float:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return float(rows[0][0]) if rows else default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(value))

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        """Return every setting except the ones kept as secrets."""
        self._sync_from_yaml()
        data = YamlConfig.redact(self._raw_all_settings())
        for k in self.BOOL_KEYS:
            data[k] = bool(data.get(k, False))
        if "timezone" not in data:
            data["timezone"] = "UTC"
        return data
