# src/fieldcheck/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..workflow.completion import TaskCompletion
from ..workflow.pipeline import SubmissionPipeline
from .ports import (
    BlobStore,
    GeolocationCapability,
    GeolocationOptions,
    IssueRepo,
    SessionProvider,
    TaskRepo,
)
from .session import WorkflowContext


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules.
    settings: Any

    sessions: SessionProvider
    task_repo: TaskRepo
    issue_repo: IssueRepo
    blob_store: BlobStore
    geolocation: GeolocationCapability | None
    gps_options: GeolocationOptions = field(default_factory=GeolocationOptions)

    # Resolved on sign-in, cleared on sign-out.
    context: WorkflowContext | None = None
    # Workflow for the task currently opened in the detail view.
    completion: TaskCompletion | None = None
    # Task ids of the last /today or /schedule listing, for /open <n>.
    listed_task_ids: list[str] = field(default_factory=list)

    def build_pipeline(self) -> SubmissionPipeline:
        return SubmissionPipeline(
            blob_store=self.blob_store,
            task_repo=self.task_repo,
            issue_repo=self.issue_repo,
        )
