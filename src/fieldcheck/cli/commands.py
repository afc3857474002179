# src/fieldcheck/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date

from ..capture.location import CaptureStatus
from ..capture.photo import FilePathPicker
from ..core.ports import UserProfile
from ..core.session import (
    AuthError,
    NotAuthenticatedError,
    WorkflowContext,
    resolve_context,
    sign_in,
    sign_out,
)
from ..core.state import AppState
from ..tasks.task_api import (
    describe_completion,
    describe_task,
    format_date,
    format_time,
    list_schedule,
    list_today,
)
from ..tasks.task_models import Task
from ..workflow.completion import HOME_ROUTE, TaskCompletion
from ..workflow.errors import TaskNotFoundError

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """User-facing command failure (bad usage or wrong view)."""


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /open, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return await handler(state, args, emit)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


async def _require_context(state: AppState) -> WorkflowContext:
    """
    Re-check the session and role for this command.

    An ended session or a revoked staff role drops the cached context and
    any open task before the error propagates.
    """
    if state.context is None:
        raise NotAuthenticatedError()
    role = getattr(state.settings, "staff_role", "staff")
    try:
        state.context = await resolve_context(state.sessions, required_role=role)
    except AuthError:
        _clear_session(state)
        raise
    return state.context


def _clear_session(state: AppState) -> None:
    state.context = None
    state.completion = None
    state.listed_task_ids = []


async def _profile(state: AppState, ctx: WorkflowContext) -> UserProfile:
    try:
        profile = await state.sessions.get_user_profile(ctx.user_id)
    except Exception:
        logger.warning("Profile lookup failed user_id=%s", ctx.user_id, exc_info=True)
        profile = None
    return profile or UserProfile()


def _require_open(state: AppState) -> TaskCompletion:
    if state.completion is None:
        raise CommandError("No task is open. Use /today and /open <n>.")
    return state.completion


def _task_line(n: int, task: Task) -> str:
    priority = (task.issue.priority if task.issue else None) or "Normal"
    status = task.status.value.replace("_", " ")
    return f"  {n}. {format_time(task.scheduled_time):>8}  {task.title}  ({priority}, {status})"


def _remember_listing(state: AppState, tasks: list[Task]) -> None:
    state.listed_task_ids = [t.id for t in tasks]


def _resolve_task_ref(state: AppState, ref: str) -> str:
    if ref.isdigit():
        idx = int(ref) - 1
        if 0 <= idx < len(state.listed_task_ids):
            return state.listed_task_ids[idx]
    return ref


def _describe_draft(completion: TaskCompletion) -> str:
    draft = completion.draft
    loc = draft.location
    if draft.coords is not None:
        gps = f"{loc.status.value} ({draft.coords.format()})"
    elif loc.status == CaptureStatus.ERROR:
        gps = f"error: {loc.error} (use /gps to retry)"
    else:
        gps = loc.status.value
    photo = f"{draft.photo.filename} ({draft.photo.size} bytes)" if draft.photo else "missing"
    lines = [
        f"Draft for {completion.task.title}:",
        f"  Photo: {photo}",
        f"  GPS:   {gps}",
        f"  Note:  {draft.note or '(none)'}",
        f"  Ready: {'yes' if completion.can_submit else 'no'}",
    ]
    if completion.submit_error:
        lines.append(f"  Last error: {completion.submit_error}")
    return "\n".join(lines)


# ---- commands ----


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    settings = state.settings
    ctx = state.context
    who = "not signed in"
    if ctx is not None:
        profile = await _profile(state, ctx)
        who = f"{profile.name or ctx.email or ctx.user_id} ({profile.department or ctx.role})"
    opened = state.completion.task.title if state.completion else "none"
    gps = "available" if state.geolocation is not None else "unavailable"
    return (
        "Status:\n"
        f"  Backend: {getattr(settings, 'backend', '?')}\n"
        f"  User: {who}\n"
        f"  Open task: {opened}\n"
        f"  Geolocation: {gps}"
    )


async def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /login <email> <password>"
    role = getattr(state.settings, "staff_role", "staff")
    state.context = await sign_in(state.sessions, args[0], args[1], required_role=role)
    return f"Welcome, {state.context.email or state.context.user_id}. Use /today to see your tasks."


async def cmd_logout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    await sign_out(state.sessions)
    _clear_session(state)
    return "Signed out."


async def cmd_today(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    ctx = await _require_context(state)
    today = date.today()
    tasks, summary = await list_today(state.task_repo, ctx, today)
    _remember_listing(state, tasks)
    profile = await _profile(state, ctx)
    header = (
        f"Hey, {profile.first_name} ({profile.department or 'Staff Member'})\n"
        f"Today's Schedule ({format_date(today)}): "
        f"{summary.total} total, {summary.completed} done, {summary.pending} pending"
    )
    if not tasks:
        return header + "\n  No tasks scheduled for today."
    return "\n".join([header] + [_task_line(n, t) for n, t in enumerate(tasks, start=1)])


async def cmd_schedule(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    ctx = await _require_context(state)
    groups = await list_schedule(state.task_repo, ctx, date.today())
    if not groups:
        return "No upcoming tasks."
    profile = await _profile(state, ctx)
    lines = [f"Upcoming for {profile.first_name}:"]
    flat: list[Task] = []
    for day, tasks in groups:
        lines.append(f"{format_date(day)}")
        for task in tasks:
            flat.append(task)
            lines.append(_task_line(len(flat), task))
    _remember_listing(state, flat)
    return "\n".join(lines)


async def cmd_open(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    await _require_context(state)
    if not args:
        return "Usage: /open <n | task id>"
    task_id = _resolve_task_ref(state, args[0])
    try:
        task = await state.task_repo.fetch_task(task_id)
    except TaskNotFoundError as e:
        state.completion = None
        return f"{e.message} The requested task might have been removed."

    if task.is_completed:
        state.completion = None
        return describe_task(task) + "\n" + describe_completion(task)

    state.completion = TaskCompletion(
        task=task,
        pipeline=state.build_pipeline(),
        geolocation=state.geolocation,
        gps_options=state.gps_options,
    )
    return describe_task(task) + "\nAttach evidence with /photo <path> and /gps, then /submit."


async def cmd_photo(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    completion = _require_open(state)
    if not args:
        return "Usage: /photo <path to image>"
    try:
        picked = await completion.pick_photo(FilePathPicker(" ".join(args)))
    except (OSError, ValueError) as e:
        return f"Could not read photo: {e}"
    if not picked:
        return "Photo selection cancelled."
    status = completion.draft.capture_status
    if status == CaptureStatus.CAPTURING:
        return "Photo attached. Seeking GPS..."
    return "Photo attached.\n" + _describe_draft(completion)


async def cmd_gps(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    completion = _require_open(state)
    if emit and completion.draft.capture_status != CaptureStatus.CAPTURED:
        emit("[GPS] Seeking...")
    status = await completion.capture_location()
    loc = completion.draft.location
    if status == CaptureStatus.CAPTURED and loc.coords is not None:
        return f"GPS secured: {loc.coords.format()}"
    return f"GPS failed: {loc.error}. Use /gps to retry."


async def cmd_note(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    completion = _require_open(state)
    completion.set_note(" ".join(args))
    return "Note cleared." if not args else "Note saved."


async def cmd_draft(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _describe_draft(_require_open(state))


async def cmd_submit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    completion = _require_open(state)
    await _require_context(state)
    if emit:
        emit("Syncing results...")
    result = await completion.submit()
    if result.navigate_to == HOME_ROUTE:
        state.completion = None
    return "Task marked as completed! Returned to dashboard."


async def cmd_back(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.completion = None
    return "Returned to dashboard."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show backend, user and open task.")
registry.register("login", cmd_login, help_text="Sign in: /login <email> <password>.")
registry.register("logout", cmd_logout, help_text="Sign out.")
registry.register("today", cmd_today, help_text="List today's tasks.", aliases=["home"])
registry.register("schedule", cmd_schedule, help_text="List upcoming tasks grouped by day.")
registry.register("open", cmd_open, help_text="Open a task: /open <n | task id>.")
registry.register("photo", cmd_photo, help_text="Attach completion photo: /photo <path>.")
registry.register("gps", cmd_gps, help_text="Capture GPS location (retry after an error).")
registry.register("note", cmd_note, help_text="Set the optional site note: /note <text>.")
registry.register("draft", cmd_draft, help_text="Show the completion draft.")
registry.register("submit", cmd_submit, help_text="Submit completion evidence.")
registry.register("back", cmd_back, help_text="Close the open task.")
