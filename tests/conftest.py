# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from fieldcheck.capture.location import FixedGeolocation
from fieldcheck.core.ports import GeolocationOptions
from fieldcheck.core.state import AppState
from fieldcheck.storage.local import LocalBlobStore, LocalSessionProvider
from fieldcheck.tasks.task_store import TaskStore

from .fakes import MUMBAI, FakeBlobStore, FakeIssueRepo, FakeTaskRepo


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment and any .env file.
    """
    return SimpleNamespace(
        app_name="fieldcheck-test",
        backend="local",
        photo_bucket="completion-photos",
        staff_role="staff",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        blob_dir=tmp_path / "storage",
        public_base_url="https://files.test",
        # Geolocation
        geolocation_available=True,
        gps_fixed_lat=MUMBAI.lat,
        gps_fixed_lng=MUMBAI.lng,
        gps_timeout_ms=1_000,
        gps_high_accuracy=True,
        gps_max_age_ms=0,
        # Demo account
        staff_email="staff@example.com",
        staff_password="staff",
        seed_demo=False,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore) -> AppState:
    """
    AppState wired with the local backend.

    NOTE: We keep the real SQLite store and blob directory here because
    the console flow is tested end to end against them.
    """
    return AppState(
        settings=settings,
        sessions=LocalSessionProvider(store),
        task_repo=store,
        issue_repo=store,
        blob_store=LocalBlobStore(settings.blob_dir, settings.photo_bucket, settings.public_base_url),
        geolocation=FixedGeolocation(settings.gps_fixed_lat, settings.gps_fixed_lng),
        gps_options=GeolocationOptions(timeout_ms=settings.gps_timeout_ms),
    )


@pytest.fixture()
def blobs() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture()
def task_repo() -> FakeTaskRepo:
    return FakeTaskRepo()


@pytest.fixture()
def issue_repo() -> FakeIssueRepo:
    return FakeIssueRepo()
