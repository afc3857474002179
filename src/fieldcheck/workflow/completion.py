# src/fieldcheck/workflow/completion.py

from __future__ import annotations

"""
Task completion state machine.

Owns the in-memory draft (photo, location, note) for one task, derives
readiness, and drives the submission pipeline.

Rules:
- can_submit is true iff a photo is selected and a location is captured
- selecting a photo while the location channel is idle starts a capture
- re-selecting a photo replaces it and never touches the location
- a failed submission keeps the draft; a successful one resets it
- one submission in flight at a time
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..capture.location import CaptureStatus, LocationChannel
from ..capture.photo import PhotoSelection
from ..core.ports import FilePickerCapability, GeolocationCapability, GeolocationOptions
from ..tasks.task_models import Coordinates, Task
from .errors import (
    CompletionError,
    MissingLocationError,
    MissingPhotoError,
    SubmissionInProgressError,
)
from .pipeline import SubmissionOutcome, SubmissionPipeline, SubmissionRequest

logger = logging.getLogger(__name__)

HOME_ROUTE = "home"


@dataclass(slots=True)
class CompletionDraft:
    location: LocationChannel
    photo: PhotoSelection | None = None
    note: str = ""

    @property
    def coords(self) -> Coordinates | None:
        return self.location.coords

    @property
    def capture_status(self) -> CaptureStatus:
        return self.location.status

    @property
    def preview(self) -> str | None:
        return self.photo.preview if self.photo is not None else None

    def capture_time(self) -> datetime | None:
        """
        Moment the evidence became complete: the later of photo selection
        and GPS fix. None while either is missing.
        """
        if self.photo is None or self.location.captured_at is None:
            return None
        return max(self.photo.selected_at, self.location.captured_at)


@dataclass(slots=True, frozen=True)
class SubmitResult:
    outcome: SubmissionOutcome
    navigate_to: str = HOME_ROUTE


@dataclass
class TaskCompletion:
    """Completion workflow for a single opened task."""

    task: Task
    pipeline: SubmissionPipeline
    geolocation: GeolocationCapability | None
    gps_options: GeolocationOptions = field(default_factory=GeolocationOptions)

    submit_error: str | None = field(default=None, init=False)
    draft: CompletionDraft = field(init=False)
    _submitting: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.draft = self._new_draft()

    def _new_draft(self) -> CompletionDraft:
        return CompletionDraft(location=LocationChannel(self.geolocation, self.gps_options))

    # ---- readiness ----

    @property
    def can_submit(self) -> bool:
        return self.draft.photo is not None and self.draft.coords is not None

    @property
    def submitting(self) -> bool:
        return self._submitting

    def check_ready(self) -> tuple[PhotoSelection, Coordinates]:
        """Return the photo and fix, or raise the precondition error for the first missing item."""
        photo = self.draft.photo
        if photo is None:
            raise MissingPhotoError()
        coords = self.draft.coords
        if coords is None:
            raise MissingLocationError()
        return photo, coords

    # ---- capture ----

    def select_photo(self, photo: PhotoSelection) -> None:
        replaced = self.draft.photo is not None
        self.draft.photo = photo
        logger.info(
            "Photo %s task_id=%s file=%s (%d bytes)",
            "replaced" if replaced else "selected",
            self.task.id,
            photo.filename,
            photo.size,
        )
        self.on_photo_captured()

    def on_photo_captured(self) -> asyncio.Task[None] | None:
        # Photo selection kicks off GPS so the worker needs one step less.
        if self.draft.location.status == CaptureStatus.IDLE:
            return self.start_location_capture()
        return None

    async def pick_photo(self, picker: FilePickerCapability) -> bool:
        """Run the picker; returns False when the user cancelled."""
        photo = await picker.pick_image()
        if photo is None:
            logger.debug("Photo pick cancelled task_id=%s", self.task.id)
            return False
        self.select_photo(photo)
        return True

    def start_location_capture(self) -> asyncio.Task[None] | None:
        return self.draft.location.start()

    async def capture_location(self) -> CaptureStatus:
        return await self.draft.location.capture()

    def set_note(self, text: str) -> None:
        self.draft.note = text

    # ---- submit ----

    async def submit(self) -> SubmitResult:
        """
        Validate and run the pipeline.

        Raises PreconditionError subclasses for an incomplete draft, and
        PhotoUploadError / TaskUpdateError for remote failures. In all error
        cases the draft is left intact and submit_error holds the message.
        """
        if self._submitting:
            raise SubmissionInProgressError()

        try:
            photo, coords = self.check_ready()
        except CompletionError as e:
            self.submit_error = e.message
            raise

        draft = self.draft
        req = SubmissionRequest(
            task_id=self.task.id,
            issue_id=self.task.issue_id,
            photo=photo,
            coords=coords,
            note=draft.note.strip() or None,
            captured_at=draft.capture_time(),
        )

        self._submitting = True
        self.submit_error = None
        try:
            outcome = await self.pipeline.submit(req)
        except CompletionError as e:
            self.submit_error = e.message
            raise
        finally:
            self._submitting = False

        self.draft = self._new_draft()
        return SubmitResult(outcome=outcome)
