# tests/test_commands.py

from __future__ import annotations

import sqlite3
import threading
from datetime import date
from pathlib import Path

import pytest

from fieldcheck.cli.bootstrap import create_initial_state, seed_demo_data
from fieldcheck.cli.commands import CommandRegistry
from fieldcheck.cli.main import _auto_sign_in
from fieldcheck.connectors.console_connector import run_command
from fieldcheck.storage import local as local_storage
from fieldcheck.tasks.task_models import IssueStatus, TaskStatus


@pytest.mark.asyncio
async def test_command_registry_routes_and_emits(state) -> None:
    reg = CommandRegistry()
    notes: list[str] = []

    async def handler(state, args, emit):
        if emit is not None:
            emit("working")
        return "got " + ",".join(args)

    reg.register("a", handler, "a", aliases=["alpha"])

    assert await reg.handle(state, "/a x y", emit=notes.append) == "got x,y"
    assert await reg.handle(state, "/ALPHA z") == "got z"
    assert notes == ["working"]
    assert "/a - a" in reg.build_help()


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_commands_require_sign_in(state) -> None:
    assert "Not signed in" in (await run_command(state, "/today") or "")
    assert "No task is open" in (await run_command(state, "/photo x.jpg") or "")


@pytest.mark.asyncio
async def test_non_staff_login_is_refused(state, store) -> None:
    store.add_user(email="boss@example.com", password="pw", role="admin")

    reply = await run_command(state, "/login boss@example.com pw")

    assert reply == "Access denied. Staff account required."
    assert state.context is None


@pytest.mark.asyncio
async def test_console_completion_flow(state, store, tmp_path: Path) -> None:
    seed_demo_data(store, email="staff@example.com", password="staff", today=date.today())
    photo = tmp_path / "site.jpg"
    photo.write_bytes(b"\xff\xd8\xff\xe0jpeg")

    assert "Welcome" in (await run_command(state, "/login staff@example.com staff") or "")

    today = await run_command(state, "/today") or ""
    assert "3 total, 0 done, 3 pending" in today
    assert today.index("Overflowing garbage bin") < today.index("Broken streetlight")
    assert today.index("Broken streetlight") < today.index("Pothole near school gate")

    opened = await run_command(state, "/open 1") or ""
    assert "Overflowing garbage bin" in opened
    task_id = state.listed_task_ids[0]

    assert await run_command(state, "/submit") == "Please select a completion photo."

    await run_command(state, f"/photo {photo}")
    assert "GPS secured: 19.076000, 72.877700" == await run_command(state, "/gps")
    assert await run_command(state, "/note Cleaned up") == "Note saved."
    assert "Ready: yes" in (await run_command(state, "/draft") or "")

    assert (await run_command(state, "/submit") or "").startswith("Task marked as completed!")
    assert state.completion is None

    task = store.get_task(task_id)
    assert task is not None
    assert task.status == TaskStatus.COMPLETED
    assert task.completion_note == "Cleaned up"
    assert task.completion_photo is not None
    assert task.completion_photo.startswith("https://files.test/completion-photos/" + task_id + "-")
    assert task.issue is not None
    assert task.issue.status == IssueStatus.RESOLVED

    reopened = await run_command(state, f"/open {task_id}") or ""
    assert "Task Completed" in reopened
    assert "Worker note: Cleaned up" in reopened

    today = await run_command(state, "/today") or ""
    assert "3 total, 1 done, 2 pending" in today


@pytest.mark.asyncio
async def test_open_unknown_task(state, store) -> None:
    store.add_user(email="staff@example.com", password="staff")
    await run_command(state, "/login staff@example.com staff")

    reply = await run_command(state, "/open 00000000-dead")

    assert reply is not None
    assert reply.startswith("Task not found.")
    assert state.completion is None


def test_bootstrap_seeds_local_backend_once(settings) -> None:
    settings.seed_demo = True

    state = create_initial_state(settings=settings)
    assert state.task_repo.count_tasks() == 4
    assert state.geolocation is not None

    again = create_initial_state(settings=settings)
    assert again.task_repo.count_tasks() == 4


@pytest.mark.asyncio
async def test_revoked_role_is_noticed_on_next_command(state, store, settings) -> None:
    uid = store.add_user(email="staff@example.com", password="staff")
    await run_command(state, "/login staff@example.com staff")
    assert state.context is not None

    with sqlite3.connect(settings.tasks_db_path) as conn:
        conn.execute("UPDATE users SET role = 'admin' WHERE id = ?", (uid,))

    assert await run_command(state, "/today") == "Access denied. Staff account required."
    assert state.context is None
    assert await state.sessions.get_current_session() is None


@pytest.mark.asyncio
async def test_ended_session_drops_open_task(state, store) -> None:
    seed_demo_data(store, email="staff@example.com", password="staff", today=date.today())
    await run_command(state, "/login staff@example.com staff")
    await run_command(state, "/today")
    await run_command(state, "/open 1")
    assert state.completion is not None

    await state.sessions.sign_out()

    reply = await run_command(state, "/submit")
    assert reply is not None
    assert reply.startswith("Not signed in")
    assert state.context is None
    assert state.completion is None


@pytest.mark.asyncio
async def test_today_and_status_greet_by_profile(state, store) -> None:
    seed_demo_data(store, email="staff@example.com", password="staff", today=date.today())
    await run_command(state, "/login staff@example.com staff")

    today = await run_command(state, "/today") or ""
    assert today.startswith("Hey, Demo (Sanitation)")

    status = await run_command(state, "/status") or ""
    assert "User: Demo Staff (Sanitation)" in status

    schedule = await run_command(state, "/schedule") or ""
    assert schedule.startswith("Upcoming for Demo:")


@pytest.mark.asyncio
async def test_profile_placeholders_without_name(state, store) -> None:
    store.add_user(email="staff@example.com", password="staff")
    await run_command(state, "/login staff@example.com staff")

    today = await run_command(state, "/today") or ""
    assert today.startswith("Hey, Worker (Staff Member)")


@pytest.mark.asyncio
async def test_password_check_runs_off_the_event_loop(state, store, monkeypatch) -> None:
    store.add_user(email="staff@example.com", password="staff")
    loop_thread = threading.get_ident()
    seen: list[int] = []
    real_verify = local_storage.verify_password

    def recording_verify(password, stored):
        seen.append(threading.get_ident())
        return real_verify(password, stored)

    monkeypatch.setattr(local_storage, "verify_password", recording_verify)

    await state.sessions.sign_in("staff@example.com", "staff")

    assert seen
    assert loop_thread not in seen


@pytest.mark.asyncio
async def test_startup_restores_existing_session(state, store, capsys) -> None:
    store.add_user(email="staff@example.com", password="staff")
    await state.sessions.sign_in("staff@example.com", "staff")
    state.settings.staff_email = None

    await _auto_sign_in(state)

    assert state.context is not None
    assert state.context.email == "staff@example.com"
    assert "Session restored for staff@example.com." in capsys.readouterr().out
