# src/fieldcheck/workflow/pipeline.py

from __future__ import annotations

"""
Submission pipeline.

Ordered remote write sequence for a completed draft:

1. upload the photo (overwrite allowed)      -> PhotoUploadError aborts
2. resolve the public URL of the object      (local, after 1 succeeded)
3. update the task record (authoritative)    -> TaskUpdateError aborts
4. mark the linked issue resolved            (best-effort, logged only)

There is no rollback. A step-3 failure leaves the uploaded object behind.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from ..capture.photo import PhotoSelection
from ..core.ports import BlobStore, IssueRepo, TaskRepo
from ..tasks.task_models import Coordinates, IssueStatus, completion_fields
from .errors import PhotoUploadError, TaskUpdateError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class SubmissionRequest:
    """Immutable snapshot of a complete draft, taken when submit starts."""

    task_id: str
    issue_id: str | None
    photo: PhotoSelection
    coords: Coordinates
    note: str | None
    captured_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class SubmissionOutcome:
    task_id: str
    object_name: str
    photo_url: str
    completed_at: datetime
    issue_id: str | None = None
    issue_resolved: bool = False
    issue_error: str | None = None


def build_object_name(task_id: str, extension: str, now: datetime) -> str:
    """<task id>-<epoch millis>.<ext>; the timestamp keeps retries from colliding."""
    millis = int(now.timestamp() * 1000)
    return f"{task_id}-{millis}.{extension}"


class SubmissionPipeline:
    def __init__(
        self,
        *,
        blob_store: BlobStore,
        task_repo: TaskRepo,
        issue_repo: IssueRepo,
        clock: Clock = utcnow,
    ) -> None:
        self._blobs = blob_store
        self._tasks = task_repo
        self._issues = issue_repo
        self._clock = clock

    async def submit(self, req: SubmissionRequest) -> SubmissionOutcome:
        now = self._clock()
        object_name = build_object_name(req.task_id, req.photo.extension, now)

        # 1. Upload
        logger.info(
            "Uploading completion photo task_id=%s object=%s (%d bytes)",
            req.task_id,
            object_name,
            req.photo.size,
        )
        try:
            await self._blobs.upload(
                object_name,
                req.photo.data,
                content_type=req.photo.content_type,
                overwrite=True,
            )
        except Exception as e:
            logger.error("Photo upload failed task_id=%s: %s", req.task_id, e)
            raise PhotoUploadError(e) from e

        # 2. Public reference
        photo_url = self._blobs.get_public_reference(object_name)

        # 3. Task record
        completed_at = req.captured_at or now
        fields = completion_fields(
            photo_url=photo_url,
            coords=req.coords,
            note=req.note,
            completed_at=completed_at,
        )
        try:
            await self._tasks.update_task(req.task_id, fields)
        except Exception as e:
            logger.error(
                "Task update failed task_id=%s (orphaned object %s): %s",
                req.task_id,
                object_name,
                e,
            )
            raise TaskUpdateError(e) from e

        logger.info("Task %s -> completed", req.task_id)

        # 4. Issue record (best-effort)
        issue_resolved = False
        issue_error: str | None = None
        if req.issue_id:
            try:
                await self._issues.update_issue(req.issue_id, {"status": IssueStatus.RESOLVED.value})
                issue_resolved = True
                logger.info("Issue %s -> resolved", req.issue_id)
            except Exception as e:
                issue_error = str(e) or e.__class__.__name__
                logger.exception(
                    "Issue update failed issue_id=%s task_id=%s (task stays completed)",
                    req.issue_id,
                    req.task_id,
                )

        return SubmissionOutcome(
            task_id=req.task_id,
            object_name=object_name,
            photo_url=photo_url,
            completed_at=completed_at,
            issue_id=req.issue_id,
            issue_resolved=issue_resolved,
            issue_error=issue_error,
        )
