# src/fieldcheck/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import hmac
import logging
import os
import sqlite3
import uuid
from datetime import date
from pathlib import Path
from typing import Any

from ..workflow.errors import TaskNotFoundError
from .task_models import IssueStatus, Task, TaskStatus, task_from_row

logger = logging.getLogger(__name__)

# Columns the completion workflow is allowed to write.
TASK_UPDATABLE = frozenset(
    {
        "status",
        "completion_photo",
        "completion_lat",
        "completion_lng",
        "completion_note",
        "completed_at",
        "scheduled_date",
        "scheduled_time",
        "staff_id",
    }
)
ISSUE_UPDATABLE = frozenset(
    {"status", "title", "description", "location", "priority", "category", "photo_url"}
)

_PBKDF2_ROUNDS = 200_000


def hash_password(password: str, *, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ROUNDS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str | None) -> bool:
    if not stored or "$" not in stored:
        return False
    salt_hex, digest_hex = stored.split("$", 1)
    try:
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    candidate = hash_password(password, salt=salt).split("$", 1)[1]
    return hmac.compare_digest(candidate, digest_hex)


class TaskStore:
    """
    SQLite store for users, issues and tasks (local backend).

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection, so the async port methods
      can run the blocking work in a worker thread.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT,
                    name TEXT,
                    department TEXT,
                    role TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS issues (
                    id TEXT PRIMARY KEY,
                    title TEXT,
                    description TEXT,
                    location TEXT,
                    priority TEXT,
                    category TEXT,
                    photo_url TEXT,
                    status TEXT NOT NULL DEFAULT 'open'
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    issue_id TEXT REFERENCES issues(id),
                    staff_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    scheduled_date TEXT,
                    scheduled_time TEXT,
                    completion_photo TEXT,
                    completion_lat REAL,
                    completion_lng REAL,
                    completion_note TEXT,
                    completed_at TEXT
                )
                """
            )

            # Migrations (safe): add missing columns.
            def add_cols(table: str, wanted: dict[str, str]) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                for name, decl in wanted.items():
                    if name in cols:
                        continue
                    cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                    logger.info("TaskStore migration: added column %s.%s", table, name)

            add_cols(
                "tasks",
                {
                    "issue_id": "TEXT",
                    "staff_id": "TEXT",
                    "scheduled_date": "TEXT",
                    "scheduled_time": "TEXT",
                    "completion_photo": "TEXT",
                    "completion_lat": "REAL",
                    "completion_lng": "REAL",
                    "completion_note": "TEXT",
                    "completed_at": "TEXT",
                },
            )
            add_cols("issues", {"category": "TEXT", "photo_url": "TEXT"})
            add_cols("users", {"department": "TEXT", "role": "TEXT"})

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_staff_date "
                "ON tasks(staff_id, scheduled_date, scheduled_time)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    def _select_tasks(self, where: str, params: tuple[Any, ...], order: str) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"""
                SELECT t.*,
                       i.id AS i_id, i.title AS i_title, i.description AS i_description,
                       i.location AS i_location, i.priority AS i_priority,
                       i.category AS i_category, i.photo_url AS i_photo_url,
                       i.status AS i_status
                FROM tasks t
                LEFT JOIN issues i ON i.id = t.issue_id
                WHERE {where}
                ORDER BY {order}
                """,
                params,
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        data = dict(row)
        issue = None
        if data.get("i_id") is not None:
            issue = {k[2:]: v for k, v in data.items() if k.startswith("i_")}
        data["issue"] = issue
        return task_from_row(data)

    # ---- seeding / admin API (sync) ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_user(
        self,
        *,
        email: str,
        password: str,
        role: str = "staff",
        name: str | None = None,
        department: str | None = None,
        user_id: str | None = None,
    ) -> str:
        if not email or not email.strip():
            raise ValueError("email is required")
        uid = user_id or self._new_id()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO users(id, email, password_hash, name, department, role)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (uid, email.strip().lower(), hash_password(password), name, department, role),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("User added id=%s role=%s", uid, role)
        return uid

    def add_issue(
        self,
        *,
        title: str,
        description: str | None = None,
        location: str | None = None,
        priority: str | None = None,
        category: str | None = None,
        photo_url: str | None = None,
        status: IssueStatus = IssueStatus.OPEN,
        issue_id: str | None = None,
    ) -> str:
        iid = issue_id or self._new_id()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO issues(id, title, description, location, priority, category, photo_url, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (iid, title, description, location, priority, category, photo_url, status.value),
            )
            conn.commit()
        finally:
            conn.close()
        return iid

    def add_task(
        self,
        *,
        staff_id: str,
        scheduled_date: date,
        scheduled_time: str | None = None,
        issue_id: str | None = None,
        status: TaskStatus = TaskStatus.PENDING,
        task_id: str | None = None,
    ) -> str:
        tid = task_id or self._new_id()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(id, issue_id, staff_id, status, scheduled_date, scheduled_time)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (tid, issue_id, staff_id, status.value, scheduled_date.isoformat(), scheduled_time),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Task added id=%s staff_id=%s date=%s", tid, staff_id, scheduled_date)
        return tid

    def get_task(self, task_id: str) -> Task | None:
        tasks = self._select_tasks("t.id = ?", (str(task_id),), "t.id")
        return tasks[0] if tasks else None

    def find_user_by_email(self, email: str) -> sqlite3.Row | None:
        conn = self._get_conn()
        try:
            return conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
        finally:
            conn.close()

    def get_role(self, user_id: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT role FROM users WHERE id = ?", (user_id,)).fetchone()
            return row["role"] if row else None
        finally:
            conn.close()

    def get_user(self, user_id: str) -> sqlite3.Row | None:
        conn = self._get_conn()
        try:
            return conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        finally:
            conn.close()

    def _update(self, table: str, allowed: frozenset[str], row_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"unknown {table} fields: {', '.join(sorted(unknown))}")
        if not fields:
            return

        cols = list(fields)
        sql = f"UPDATE {table} SET {', '.join(f'{c} = ?' for c in cols)} WHERE id = ?"
        params = [fields[c] for c in cols] + [str(row_id)]

        conn = self._get_conn()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            if cur.rowcount != 1:
                raise LookupError(f"no {table} row with id {row_id}")
        finally:
            conn.close()

    def update_task_sync(self, task_id: str, fields: dict[str, Any]) -> None:
        self._update("tasks", TASK_UPDATABLE, task_id, fields)

    def update_issue_sync(self, issue_id: str, fields: dict[str, Any]) -> None:
        self._update("issues", ISSUE_UPDATABLE, issue_id, fields)

    # ---- TaskRepo / IssueRepo ports (async) ----

    async def fetch_task(self, task_id: str) -> Task:
        task = await asyncio.to_thread(self.get_task, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        await asyncio.to_thread(self.update_task_sync, task_id, fields)

    async def update_issue(self, issue_id: str, fields: dict[str, Any]) -> None:
        await asyncio.to_thread(self.update_issue_sync, issue_id, fields)

    async def list_tasks_for_day(self, staff_id: str, day: date) -> list[Task]:
        return await asyncio.to_thread(
            self._select_tasks,
            "t.staff_id = ? AND t.scheduled_date = ?",
            (staff_id, day.isoformat()),
            "t.scheduled_time IS NULL, t.scheduled_time ASC",
        )

    async def list_tasks_from(self, staff_id: str, start: date) -> list[Task]:
        return await asyncio.to_thread(
            self._select_tasks,
            "t.staff_id = ? AND t.scheduled_date >= ?",
            (staff_id, start.isoformat()),
            "t.scheduled_date ASC, t.scheduled_time IS NULL, t.scheduled_time ASC",
        )
