# tests/test_supabase_backend.py

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from fieldcheck.storage.supabase_backend import (
    BackendError,
    SupabaseBlobStore,
    SupabaseSessionProvider,
    SupabaseTaskRepo,
)
from fieldcheck.workflow.errors import TaskNotFoundError


class _Query:
    """Chainable stand-in for a PostgREST request builder."""

    def __init__(self, data: list[dict[str, Any]] | None, error: Exception | None = None) -> None:
        self.data = data
        self.error = error
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def __getattr__(self, name: str):
        def chain(*args: Any) -> _Query:
            self.calls.append((name, args))
            return self

        return chain

    def execute(self) -> SimpleNamespace:
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data)


class _Bucket:
    def __init__(self) -> None:
        self.uploads: list[dict[str, Any]] = []

    def upload(self, **kwargs: Any) -> None:
        self.uploads.append(kwargs)

    def get_public_url(self, name: str) -> str:
        return f"https://demo.supabase.co/storage/v1/object/public/completion-photos/{name}?"


class _Client:
    def __init__(self, tables: dict[str, _Query]) -> None:
        self.tables = tables
        self.bucket = _Bucket()
        self.storage = SimpleNamespace(from_=lambda _name: self.bucket)

    def table(self, name: str) -> _Query:
        return self.tables[name]


@pytest.mark.asyncio
async def test_blob_store_upserts_and_strips_query() -> None:
    client = _Client({})
    blobs = SupabaseBlobStore(client, "completion-photos")

    await blobs.upload("t1-1.jpg", b"jpeg", content_type="image/jpeg")

    assert client.bucket.uploads == [
        {
            "path": "t1-1.jpg",
            "file": b"jpeg",
            "file_options": {"content-type": "image/jpeg", "upsert": "true"},
        }
    ]
    assert blobs.get_public_reference("t1-1.jpg").endswith("/completion-photos/t1-1.jpg")


@pytest.mark.asyncio
async def test_fetch_task_maps_embedded_issue() -> None:
    row = {
        "id": "t1",
        "status": "pending",
        "scheduled_date": "2026-10-19",
        "scheduled_time": "09:30:00",
        "issues": {"id": "i1", "title": "Broken streetlight", "status": "open"},
    }
    repo = SupabaseTaskRepo(_Client({"tasks": _Query([row])}))

    task = await repo.fetch_task("t1")

    assert task.issue_id == "i1"
    assert task.title == "Broken streetlight"


@pytest.mark.asyncio
async def test_fetch_task_missing_or_failing_is_not_found() -> None:
    empty = SupabaseTaskRepo(_Client({"tasks": _Query([])}))
    with pytest.raises(TaskNotFoundError):
        await empty.fetch_task("t1")

    broken = SupabaseTaskRepo(_Client({"tasks": _Query(None, error=RuntimeError("JWT expired"))}))
    with pytest.raises(TaskNotFoundError):
        await broken.fetch_task("t1")


@pytest.mark.asyncio
async def test_update_without_matching_row_fails() -> None:
    tasks = _Query([])
    repo = SupabaseTaskRepo(_Client({"tasks": tasks}))

    with pytest.raises(BackendError):
        await repo.update_task("t1", {"status": "completed"})

    assert ("update", ({"status": "completed"},)) in tasks.calls
    assert ("eq", ("id", "t1")) in tasks.calls


@pytest.mark.asyncio
async def test_service_error_message_is_kept() -> None:
    err = RuntimeError("ignored")
    err.message = "new row violates row-level security policy"  # type: ignore[attr-defined]
    repo = SupabaseTaskRepo(_Client({"issues": _Query(None, error=err)}))

    with pytest.raises(BackendError) as exc_info:
        await repo.update_issue("i1", {"status": "resolved"})

    assert str(exc_info.value) == "new row violates row-level security policy"


@pytest.mark.asyncio
async def test_role_lookup_reads_users_table() -> None:
    provider = SupabaseSessionProvider(_Client({"users": _Query([{"role": "staff"}])}))
    assert await provider.get_user_role("u1") == "staff"

    nobody = SupabaseSessionProvider(_Client({"users": _Query([])}))
    assert await nobody.get_user_role("u1") is None


@pytest.mark.asyncio
async def test_profile_lookup_reads_users_table() -> None:
    row = {"name": "Asha Patil", "department": "Roads"}
    provider = SupabaseSessionProvider(_Client({"users": _Query([row])}))

    profile = await provider.get_user_profile("u1")

    assert profile is not None
    assert profile.first_name == "Asha"
    assert profile.department == "Roads"

    nobody = SupabaseSessionProvider(_Client({"users": _Query([])}))
    assert await nobody.get_user_profile("u1") is None
