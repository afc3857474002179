# src/fieldcheck/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The completion workflow depends on Protocols instead of concrete backends.
This keeps the local SQLite backend and the Supabase backend swappable and
lets tests drive the workflow with in-memory fakes.

Every remote-facing operation is awaitable: the caller suspends until the
operation completes or raises.
"""

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..capture.photo import PhotoSelection
    from ..tasks.task_models import Coordinates, Task


@dataclass(slots=True, frozen=True)
class Session:
    user_id: str
    email: str | None = None


@dataclass(slots=True, frozen=True)
class UserProfile:
    name: str | None = None
    department: str | None = None

    @property
    def first_name(self) -> str:
        parts = (self.name or "").split()
        return parts[0] if parts else "Worker"


@dataclass(slots=True, frozen=True)
class GeolocationOptions:
    """Single-shot position request options."""

    high_accuracy: bool = True
    timeout_ms: int = 15_000
    max_age_ms: int = 0


class SessionProvider(Protocol):
    async def sign_in(self, email: str, password: str) -> Session: ...
    async def sign_out(self) -> None: ...
    async def get_current_session(self) -> Session | None: ...
    async def get_user_role(self, user_id: str) -> str | None: ...
    async def get_user_profile(self, user_id: str) -> UserProfile | None: ...


class TaskRepo(Protocol):
    # Raises TaskNotFoundError when the task does not exist.
    async def fetch_task(self, task_id: str) -> Task: ...

    # Raises on any store error, including "no such task".
    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None: ...

    # Schedule queries (read-only)
    async def list_tasks_for_day(self, staff_id: str, day: date) -> list[Task]: ...
    async def list_tasks_from(self, staff_id: str, start: date) -> list[Task]: ...


class IssueRepo(Protocol):
    async def update_issue(self, issue_id: str, fields: dict[str, Any]) -> None: ...


class BlobStore(Protocol):
    """
    Object storage for completion photos.

    upload() with overwrite=True must succeed when an object with the same
    name already exists. get_public_reference() is a local derivation and
    performs no network call.
    """

    async def upload(
            self,
            name: str,
            data: bytes,
            *,
            content_type: str,
            overwrite: bool = True,
    ) -> None: ...

    def get_public_reference(self, name: str) -> str: ...


class GeolocationCapability(Protocol):
    async def get_current_position(self, options: GeolocationOptions) -> Coordinates: ...


class FilePickerCapability(Protocol):
    # None means the user cancelled the picker.
    async def pick_image(self) -> PhotoSelection | None: ...
