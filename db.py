import sqlite3
import json
import datetime
from contextlib import contextmanager
from typing import List, Tuple, Optional, Iterable, Sequence

from config import YamlConfig
from settings_schema import default_settings


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workout_plans": (
            """CREATE TABLE workout_plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    plan_details TEXT NOT NULL DEFAULT '',
                    is_active INTEGER NOT NULL DEFAULT 0,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    completed_workouts TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "name",
                "plan_details",
                "is_active",
                "is_archived",
                "completed_workouts",
                "created_at",
                "updated_at",
            ],
        ),
        "plan_workouts": (
            """CREATE TABLE plan_workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_id INTEGER NOT NULL,
                    day INTEGER NOT NULL,
                    muscle_group TEXT NOT NULL,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (plan_id, day),
                    FOREIGN KEY(plan_id) REFERENCES workout_plans(id) ON DELETE CASCADE
                );""",
            ["id", "plan_id", "day", "muscle_group", "created_at"],
        ),
        "plan_exercises": (
            """CREATE TABLE plan_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_id INTEGER NOT NULL,
                    order_index INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    reps TEXT NOT NULL,
                    weight REAL,
                    is_bodyweight INTEGER NOT NULL DEFAULT 0,
                    rest_seconds INTEGER,
                    notes TEXT,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (workout_id, order_index),
                    FOREIGN KEY(workout_id) REFERENCES plan_workouts(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_id",
                "order_index",
                "title",
                "reps",
                "weight",
                "is_bodyweight",
                "rest_seconds",
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

    def __init__(self, db_path: str = "workout.db", timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path, timeout=self._timeout)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        except BaseException:
            connection.rollback()
            raise
        finally:
            connection.close()

    @contextmanager
    def transaction(self):
        """Yield one connection; everything run on it commits or rolls back together."""
        with self._connection() as conn:
            yield conn

    @contextmanager
    def _use(self, conn: sqlite3.Connection | None):
        if conn is not None:
            yield conn
        else:
            with self._connection() as own:
                yield own

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep child foreign keys pointing at the rebuilt table name
            conn.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA foreign_keys=on;")

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
                    if col in ("is_active", "is_archived", "is_bodyweight"):
                        return "0"
                    if col == "completed_workouts":
                        return "'[]'"
                    if col in ("created_at", "updated_at"):
                        return "CURRENT_TIMESTAMP"
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
            key: ("1" if value else "0") if isinstance(value, bool) else str(value)
            for key, value in default_settings().items()
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(
        self, query: str, params: Tuple = (), conn: sqlite3.Connection | None = None
    ) -> int:
        with self._use(conn) as c:
            cursor = c.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(
        self, query: str, params: Tuple = (), conn: sqlite3.Connection | None = None
    ) -> List[Tuple]:
        with self._use(conn) as c:
            cursor = c.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


def _now() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


class WorkoutPlanRepository(BaseRepository):
    """Repository for workout plans and their raw plan text."""

    _COLUMNS = "id, user_id, name, plan_details, is_active, is_archived, completed_workouts, created_at, updated_at"

    @staticmethod
    def _to_dict(row: Tuple) -> dict:
        (
            pid,
            user_id,
            name,
            details,
            active,
            archived,
            completed,
            created,
            updated,
        ) = row
        return {
            "id": pid,
            "user_id": user_id,
            "name": name,
            "plan_details": details,
            "is_active": bool(active),
            "is_archived": bool(archived),
            "completed_workouts": json.loads(completed) if completed else [],
            "created_at": created,
            "updated_at": updated,
        }

    def create(
        self,
        user_id: int,
        name: str,
        plan_details: str = "",
        is_active: bool = False,
    ) -> int:
        now = _now()
        return self.execute(
            "INSERT INTO workout_plans (user_id, name, plan_details, is_active, is_archived, completed_workouts, created_at, updated_at) VALUES (?, ?, ?, ?, 0, '[]', ?, ?);",
            (user_id, name, plan_details or "", int(is_active), now, now),
        )

    def fetch_detail(self, plan_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_plans WHERE id = ?;",
            (plan_id,),
        )
        if not rows:
            raise ValueError("workout plan not found")
        return self._to_dict(rows[0])

    def fetch_for_user(self, user_id: int) -> List[dict]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_plans WHERE user_id = ? ORDER BY created_at DESC, id DESC;",
            (user_id,),
        )
        return [self._to_dict(r) for r in rows]

    def fetch_active(self, user_id: int) -> Optional[dict]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_plans WHERE user_id = ? AND is_active = 1 ORDER BY id LIMIT 1;",
            (user_id,),
        )
        return self._to_dict(rows[0]) if rows else None

    def update(
        self,
        plan_id: int,
        name: str | None = None,
        plan_details: str | None = None,
        is_active: bool | None = None,
        is_archived: bool | None = None,
        completed_workouts: list | None = None,
    ) -> None:
        self.fetch_detail(plan_id)
        assignments: list[str] = []
        params: list = []
        if name is not None:
            assignments.append("name = ?")
            params.append(name)
        if plan_details is not None:
            assignments.append("plan_details = ?")
            params.append(plan_details)
        if is_active is not None:
            assignments.append("is_active = ?")
            params.append(int(is_active))
        if is_archived is not None:
            assignments.append("is_archived = ?")
            params.append(int(is_archived))
        if completed_workouts is not None:
            assignments.append("completed_workouts = ?")
            params.append(json.dumps(completed_workouts))
        assignments.append("updated_at = ?")
        params.append(_now())
        params.append(plan_id)
        self.execute(
            f"UPDATE workout_plans SET {', '.join(assignments)} WHERE id = ?;",
            tuple(params),
        )

    def activate(self, plan_id: int) -> None:
        plan = self.fetch_detail(plan_id)
        with self.transaction() as conn:
            self.execute(
                "UPDATE workout_plans SET is_active = 0 WHERE user_id = ?;",
                (plan["user_id"],),
                conn=conn,
            )
            self.execute(
                "UPDATE workout_plans SET is_active = 1, updated_at = ? WHERE id = ?;",
                (_now(), plan_id),
                conn=conn,
            )

    def delete(self, plan_id: int) -> None:
        self.fetch_detail(plan_id)
        self.execute("DELETE FROM workout_plans WHERE id = ?;", (plan_id,))

    def delete_all(self) -> None:
        self._delete_all("workout_plans")


class PlanWorkoutRepository(BaseRepository):
    """Repository for workouts generated from plan text, one per plan day."""

    def find(
        self, plan_id: int, day: int, conn: sqlite3.Connection | None = None
    ) -> Optional[Tuple[int, int, int, str, str]]:
        rows = self.fetch_all(
            "SELECT id, plan_id, day, muscle_group, created_at FROM plan_workouts WHERE plan_id = ? AND day = ?;",
            (plan_id, day),
            conn=conn,
        )
        return rows[0] if rows else None

    def create(
        self,
        plan_id: int,
        day: int,
        muscle_group: str,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO plan_workouts (plan_id, day, muscle_group) VALUES (?, ?, ?);",
            (plan_id, day, muscle_group),
            conn=conn,
        )

    def fetch_for_plan(self, plan_id: int) -> List[Tuple[int, int, int, str, str]]:
        return self.fetch_all(
            "SELECT id, plan_id, day, muscle_group, created_at FROM plan_workouts WHERE plan_id = ? ORDER BY day;",
            (plan_id,),
        )

    def fetch_detail(self, workout_id: int) -> Tuple[int, int, int, str, str]:
        rows = self.fetch_all(
            "SELECT id, plan_id, day, muscle_group, created_at FROM plan_workouts WHERE id = ?;",
            (workout_id,),
        )
        if not rows:
            raise ValueError("workout not found")
        return rows[0]

    def set_muscle_group(self, workout_id: int, muscle_group: str) -> None:
        self.fetch_detail(workout_id)
        self.execute(
            "UPDATE plan_workouts SET muscle_group = ? WHERE id = ?;",
            (muscle_group, workout_id),
        )

    def delete_not_in(self, plan_id: int, days: Iterable[int]) -> int:
        """Delete the plan's workouts whose day is not in ``days``."""
        keep = sorted(set(days))
        query = "DELETE FROM plan_workouts WHERE plan_id = ?"
        if keep:
            placeholders = ",".join("?" for _ in keep)
            query += f" AND day NOT IN ({placeholders})"
        with self._connection() as conn:
            cursor = conn.execute(query + ";", (plan_id, *keep))
            return cursor.rowcount


class PlanExerciseRepository(BaseRepository):
    """Repository for exercises of generated workouts."""

    def delete_for_workout(
        self, workout_id: int, conn: sqlite3.Connection | None = None
    ) -> None:
        self.execute(
            "DELETE FROM plan_exercises WHERE workout_id = ?;",
            (workout_id,),
            conn=conn,
        )

    def insert_many(
        self,
        workout_id: int,
        exercises: Sequence[dict],
        conn: sqlite3.Connection | None = None,
    ) -> None:
        rows = [
            (
                workout_id,
                ex["order_index"],
                ex["title"],
                json.dumps(ex["reps"]),
                ex.get("weight"),
                int(bool(ex.get("is_bodyweight"))),
                ex.get("rest_seconds"),
                ex.get("notes"),
            )
            for ex in exercises
        ]
        if not rows:
            return
        with self._use(conn) as c:
            c.executemany(
                "INSERT INTO plan_exercises (workout_id, order_index, title, reps, weight, is_bodyweight, rest_seconds, notes) VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
                rows,
            )

    def fetch_for_workout(self, workout_id: int) -> List[dict]:
        rows = self.fetch_all(
            "SELECT id, workout_id, order_index, title, reps, weight, is_bodyweight, rest_seconds, notes, created_at FROM plan_exercises WHERE workout_id = ? ORDER BY order_index;",
            (workout_id,),
        )
        return [
            {
                "id": ex_id,
                "workout_id": wid,
                "order_index": idx,
                "title": title,
                "reps": json.loads(reps),
                "weight": weight,
                "is_bodyweight": bool(bw),
                "rest_seconds": rest,
                "notes": notes,
                "created_at": created,
            }
            for ex_id, wid, idx, title, reps, weight, bw, rest, notes, created in rows
        ]


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    BOOL_KEYS = {"auto_generate_workouts", "auto_cleanup_workouts"}
    TEXT_KEYS = {"log_level", "api_token", "app_version"}

    def __init__(
        self, db_path: str = "workout.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str | bool] = {}
        for k, v in rows:
            if k in self.BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
                continue
            if k in self.TEXT_KEYS:
                result[k] = v
                continue
            try:
                result[k] = float(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
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

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_float(self, key: str, default: float) -> float:
        try:
            return float(self.get_text(key, str(default)))
        except ValueError:
            return default

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
        self._sync_from_yaml()
        return self._raw_all_settings()
