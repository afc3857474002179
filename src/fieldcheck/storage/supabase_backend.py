# src/fieldcheck/storage/supabase_backend.py

from __future__ import annotations

"""
Supabase backend.

- Storage bucket for completion photos (upsert uploads, public URLs)
- PostgREST tables: tasks, issues, users
- Auth: email/password sessions

The supabase client is synchronous; every call runs in a worker thread so
the event loop is never blocked.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import date
from typing import Any, TypeVar

import httpx
from supabase import Client, create_client

from ..core.ports import Session, UserProfile
from ..core.session import InvalidCredentialsError
from ..tasks.task_models import Task, task_from_row
from ..workflow.errors import TaskNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ISSUE_COLUMNS = "id, title, description, location, priority, category, photo_url, status"
TASK_SELECT = f"*, issues ({ISSUE_COLUMNS})"
TASK_LIST_SELECT = "*, issues (id, title, location, priority, category, status)"


class BackendError(Exception):
    """A Supabase call failed; the message is the cause reported by the service."""


def _error_message(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPError):
        return f"network error: {exc}"
    msg = getattr(exc, "message", None)
    if isinstance(msg, str) and msg.strip():
        return msg.strip()
    return str(exc).strip() or exc.__class__.__name__


async def _call(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except BackendError:
        raise
    except Exception as e:
        raise BackendError(_error_message(e)) from e


def create_supabase_client(url: str | None, key: str | None) -> Client:
    if not url or not key:
        raise RuntimeError("Supabase credentials not configured (FIELDCHECK_SUPABASE_URL / _KEY).")
    client = create_client(url, key)
    logger.info("Supabase client initialized for %s", url)
    return client


class SupabaseBlobStore:
    def __init__(self, client: Client, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    def _upload(self, name: str, data: bytes, content_type: str, overwrite: bool) -> None:
        self._client.storage.from_(self._bucket).upload(
            path=name,
            file=data,
            file_options={"content-type": content_type, "upsert": "true" if overwrite else "false"},
        )

    async def upload(
        self,
        name: str,
        data: bytes,
        *,
        content_type: str,
        overwrite: bool = True,
    ) -> None:
        logger.info("Uploading %s/%s (%s)", self._bucket, name, content_type)
        await _call(self._upload, name, data, content_type, overwrite)

    def get_public_reference(self, name: str) -> str:
        url = self._client.storage.from_(self._bucket).get_public_url(name)
        # Some client versions append an empty query string.
        return str(url).rstrip("?")


class SupabaseTaskRepo:
    """TaskRepo + IssueRepo over PostgREST."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def _fetch(self, task_id: str) -> list[dict[str, Any]]:
        resp = self._client.table("tasks").select(TASK_SELECT).eq("id", task_id).limit(1).execute()
        return list(resp.data or [])

    async def fetch_task(self, task_id: str) -> Task:
        try:
            rows = await _call(self._fetch, task_id)
        except BackendError as e:
            logger.warning("Task fetch failed task_id=%s: %s", task_id, e)
            raise TaskNotFoundError(task_id) from e
        if not rows:
            raise TaskNotFoundError(task_id)
        return task_from_row(rows[0])

    def _update(self, table: str, row_id: str, fields: dict[str, Any]) -> None:
        resp = self._client.table(table).update(fields).eq("id", row_id).execute()
        if not resp.data:
            # No row matched (missing id or blocked by row-level security).
            raise BackendError(f"no {table} row updated for id {row_id}")

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        await _call(self._update, "tasks", task_id, fields)

    async def update_issue(self, issue_id: str, fields: dict[str, Any]) -> None:
        await _call(self._update, "issues", issue_id, fields)

    def _list_day(self, staff_id: str, day: date) -> list[dict[str, Any]]:
        resp = (
            self._client.table("tasks")
            .select(TASK_LIST_SELECT)
            .eq("staff_id", staff_id)
            .eq("scheduled_date", day.isoformat())
            .order("scheduled_time")
            .execute()
        )
        return list(resp.data or [])

    def _list_from(self, staff_id: str, start: date) -> list[dict[str, Any]]:
        resp = (
            self._client.table("tasks")
            .select(TASK_LIST_SELECT)
            .eq("staff_id", staff_id)
            .gte("scheduled_date", start.isoformat())
            .order("scheduled_date")
            .order("scheduled_time")
            .execute()
        )
        return list(resp.data or [])

    async def list_tasks_for_day(self, staff_id: str, day: date) -> list[Task]:
        rows = await _call(self._list_day, staff_id, day)
        return [task_from_row(r) for r in rows]

    async def list_tasks_from(self, staff_id: str, start: date) -> list[Task]:
        rows = await _call(self._list_from, staff_id, start)
        return [task_from_row(r) for r in rows]


class SupabaseSessionProvider:
    def __init__(self, client: Client) -> None:
        self._client = client

    async def sign_in(self, email: str, password: str) -> Session:
        try:
            resp = await _call(
                self._client.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except BackendError as e:
            raise InvalidCredentialsError(str(e)) from e
        if resp.session is None or resp.user is None:
            raise InvalidCredentialsError()
        return Session(user_id=str(resp.user.id), email=resp.user.email)

    async def sign_out(self) -> None:
        await _call(self._client.auth.sign_out)

    async def get_current_session(self) -> Session | None:
        sess = await _call(self._client.auth.get_session)
        if sess is None or sess.user is None:
            return None
        return Session(user_id=str(sess.user.id), email=sess.user.email)

    def _role(self, user_id: str) -> str | None:
        resp = self._client.table("users").select("role").eq("id", user_id).limit(1).execute()
        rows = resp.data or []
        return rows[0].get("role") if rows else None

    async def get_user_role(self, user_id: str) -> str | None:
        return await _call(self._role, user_id)

    def _profile(self, user_id: str) -> UserProfile | None:
        resp = self._client.table("users").select("name, department").eq("id", user_id).limit(1).execute()
        rows = resp.data or []
        if not rows:
            return None
        return UserProfile(name=rows[0].get("name"), department=rows[0].get("department"))

    async def get_user_profile(self, user_id: str) -> UserProfile | None:
        return await _call(self._profile, user_id)
