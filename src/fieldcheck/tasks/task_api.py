# src/fieldcheck/tasks/task_api.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from ..core.ports import TaskRepo
from ..core.session import WorkflowContext
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TaskSummary:
    total: int
    completed: int
    pending: int


def format_time(time_string: str | None) -> str:
    """'14:05[:00]' -> '2:05 PM'; missing time means an all-day task."""
    if not time_string:
        return "All Day"
    hours, _, rest = time_string.partition(":")
    minutes = rest[:2] or "00"
    h = int(hours)
    ampm = "PM" if h >= 12 else "AM"
    h12 = h % 12 or 12
    return f"{h12}:{minutes} {ampm}"


def format_date(day: date) -> str:
    """date(2026, 10, 19) -> 'Monday, October 19'."""
    return f"{day.strftime('%A, %B')} {day.day}"


def summarize(tasks: list[Task]) -> TaskSummary:
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    return TaskSummary(total=len(tasks), completed=completed, pending=len(tasks) - completed)


async def list_today(
    repo: TaskRepo, ctx: WorkflowContext, today: date
) -> tuple[list[Task], TaskSummary]:
    tasks = await repo.list_tasks_for_day(ctx.user_id, today)
    return tasks, summarize(tasks)


async def list_schedule(
    repo: TaskRepo, ctx: WorkflowContext, today: date
) -> list[tuple[date, list[Task]]]:
    """Upcoming tasks (today onward) grouped by date, dates ascending."""
    tasks = await repo.list_tasks_from(ctx.user_id, today)
    grouped: dict[date, list[Task]] = {}
    for task in tasks:
        if task.scheduled_date is None:
            logger.debug("Task %s has no scheduled_date; skipped", task.id)
            continue
        grouped.setdefault(task.scheduled_date, []).append(task)
    return sorted(grouped.items())


def describe_task(task: Task) -> str:
    issue = task.issue
    priority = (issue.priority if issue else None) or "Normal"
    lines = [
        f"{task.title}  [{task.status.value.replace('_', ' ')}]",
        f"  Ref: {task.id[:8]}  Priority: {priority}"
        + (f"  Category: {issue.category}" if issue and issue.category else ""),
        f"  Location: {(issue.location if issue else None) or 'Specific Area'}",
        f"  Scheduled: {format_time(task.scheduled_time)}"
        + (f" on {format_date(task.scheduled_date)}" if task.scheduled_date else ""),
        f"  Details: {(issue.description if issue else None) or 'No specific instructions provided for this task.'}",
    ]
    if issue and issue.photo_url:
        lines.append(f"  Reported photo: {issue.photo_url}")
    return "\n".join(lines)


def describe_completion(task: Task) -> str:
    """Evidence of an already completed task."""
    lines = ["Task Completed"]
    if task.completion_photo:
        lines.append(f"  Verification image: {task.completion_photo}")
    coords = task.completion_coords
    if coords is not None:
        lines.append(f"  GPS verified: {coords.format()}")
    if task.completion_note:
        lines.append(f"  Worker note: {task.completion_note}")
    if task.completed_at:
        lines.append(f"  Completed at: {task.completed_at.isoformat(timespec='seconds')}")
    return "\n".join(lines)
