# src/fieldcheck/workflow/errors.py

"""
Errors raised by the completion workflow.

Every error carries a user-facing message. Remote errors keep the
underlying exception in `cause` (and as __cause__ when raised with `from`).
"""

from __future__ import annotations


class CompletionError(Exception):
    """Base class for all completion workflow errors."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class PreconditionError(CompletionError):
    """Draft is incomplete. Raised before any remote call."""


class MissingPhotoError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Please select a completion photo.")


class MissingLocationError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("GPS location is required. Please wait for GPS to capture.")


class SubmissionInProgressError(CompletionError):
    def __init__(self) -> None:
        super().__init__("A submission for this task is already in progress.")


class PhotoUploadError(CompletionError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Photo upload failed: {_describe(cause)}", cause=cause)


class TaskUpdateError(CompletionError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Failed to update task: {_describe(cause)}", cause=cause)


class TaskNotFoundError(CompletionError):
    def __init__(self, task_id: str) -> None:
        super().__init__("Task not found.")
        self.task_id = task_id


def _describe(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or exc.__class__.__name__
