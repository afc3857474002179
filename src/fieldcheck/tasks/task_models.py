# src/fieldcheck/tasks/task_models.py

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """Task lifecycle status as stored in the `tasks` table."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class IssueStatus(StrEnum):
    OPEN = "open"
    RESOLVED = "resolved"

    @classmethod
    def from_db(cls, raw: str | None) -> IssueStatus:
        if not raw:
            return cls.OPEN
        try:
            return cls(raw)
        except ValueError:
            return cls.OPEN


@dataclass(slots=True, frozen=True)
class Coordinates:
    """GPS fix in degrees. Only finiteness is checked, not ranges."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            raise ValueError(f"coordinates must be finite, got ({self.lat}, {self.lng})")

    def format(self, digits: int = 6) -> str:
        return f"{self.lat:.{digits}f}, {self.lng:.{digits}f}"


@dataclass(slots=True)
class Issue:
    id: str
    title: str | None = None
    description: str | None = None
    location: str | None = None
    priority: str | None = None
    category: str | None = None
    photo_url: str | None = None
    status: IssueStatus = IssueStatus.OPEN


@dataclass(slots=True)
class Task:
    id: str
    status: TaskStatus
    scheduled_date: date | None
    scheduled_time: str | None  # "HH:MM[:SS]" or None for all-day
    staff_id: str | None = None
    issue: Issue | None = None

    # Completion evidence (present once completed)
    completion_photo: str | None = None
    completion_lat: float | None = None
    completion_lng: float | None = None
    completion_note: str | None = None
    completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def issue_id(self) -> str | None:
        return self.issue.id if self.issue is not None else None

    @property
    def title(self) -> str:
        if self.issue is not None and self.issue.title:
            return self.issue.title
        return "Untitled Assignment"

    @property
    def completion_coords(self) -> Coordinates | None:
        if self.completion_lat is None or self.completion_lng is None:
            return None
        return Coordinates(self.completion_lat, self.completion_lng)


def completion_fields(
    *,
    photo_url: str,
    coords: Coordinates,
    note: str | None,
    completed_at: datetime,
) -> dict[str, Any]:
    """
    Field set written to the task record on completion.

    Keys are the column names of the backing store and must stay stable.
    """
    return {
        "status": TaskStatus.COMPLETED.value,
        "completion_photo": photo_url,
        "completion_lat": coords.lat,
        "completion_lng": coords.lng,
        "completion_note": note or "",
        "completed_at": completed_at.isoformat(),
    }


def _parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw)[:10])


def _parse_datetime(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    # PostgREST may return a trailing "Z".
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


def _opt_float(raw: Any) -> float | None:
    return float(raw) if raw is not None else None


def issue_from_row(row: dict[str, Any] | None) -> Issue | None:
    if not row or row.get("id") is None:
        return None
    return Issue(
        id=str(row["id"]),
        title=row.get("title"),
        description=row.get("description"),
        location=row.get("location"),
        priority=row.get("priority"),
        category=row.get("category"),
        photo_url=row.get("photo_url"),
        status=IssueStatus.from_db(row.get("status")),
    )


def task_from_row(row: dict[str, Any]) -> Task:
    """
    Build a Task from a store row.

    The joined issue may arrive under "issues" (PostgREST embed) or "issue".
    """
    issue_raw = row.get("issues", row.get("issue"))
    if isinstance(issue_raw, list):
        issue_raw = issue_raw[0] if issue_raw else None

    return Task(
        id=str(row["id"]),
        status=TaskStatus.from_db(row.get("status")),
        scheduled_date=_parse_date(row.get("scheduled_date")),
        scheduled_time=row.get("scheduled_time") or None,
        staff_id=row.get("staff_id"),
        issue=issue_from_row(issue_raw),
        completion_photo=row.get("completion_photo") or None,
        completion_lat=_opt_float(row.get("completion_lat")),
        completion_lng=_opt_float(row.get("completion_lng")),
        completion_note=row.get("completion_note") or None,
        completed_at=_parse_datetime(row.get("completed_at")),
    )
