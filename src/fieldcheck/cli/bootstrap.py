# src/fieldcheck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the configured backend and device capabilities into AppState.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from ..capture.location import FixedGeolocation
from ..config import BACKEND_SUPABASE, get_settings
from ..core.ports import GeolocationCapability, GeolocationOptions
from ..core.state import AppState
from ..storage.local import LocalBlobStore, LocalSessionProvider
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.blob_dir.mkdir(parents=True, exist_ok=True)


def _geolocation(settings) -> GeolocationCapability | None:
    if not settings.geolocation_available:
        logger.info("No GPS coordinates configured; geolocation unavailable.")
        return None
    return FixedGeolocation(settings.gps_fixed_lat, settings.gps_fixed_lng)


def _gps_options(settings) -> GeolocationOptions:
    return GeolocationOptions(
        high_accuracy=settings.gps_high_accuracy,
        timeout_ms=settings.gps_timeout_ms,
        max_age_ms=settings.gps_max_age_ms,
    )


def seed_demo_data(store: TaskStore, *, email: str, password: str, today: date) -> str:
    """Create one staff user with a few tasks around `today`. Returns the user id."""
    staff_id = store.add_user(
        email=email, password=password, role="staff", name="Demo Staff", department="Sanitation"
    )
    demo = [
        ("Overflowing garbage bin", "Ward 12 market road", "high", "sanitation", today, "09:30"),
        ("Broken streetlight", "Lane 4, Sector 7", "medium", "electrical", today, "14:00"),
        ("Pothole near school gate", "Main road, Ward 3", None, "roads", today, None),
        ("Blocked storm drain", "Station road", "high", "drainage", today + timedelta(days=1), "10:15"),
    ]
    for title, location, priority, category, day, at in demo:
        issue_id = store.add_issue(title=title, location=location, priority=priority, category=category)
        store.add_task(staff_id=staff_id, scheduled_date=day, scheduled_time=at, issue_id=issue_id)
    logger.info("Seeded demo data for %s (%d tasks)", email, len(demo))
    return staff_id


def create_local_state(settings) -> AppState:
    store = TaskStore(settings.tasks_db_path)
    if settings.seed_demo and store.count_tasks() == 0:
        seed_demo_data(
            store,
            email=settings.staff_email or "staff@example.com",
            password=settings.staff_password or "staff",
            today=date.today(),
        )
    return AppState(
        settings=settings,
        sessions=LocalSessionProvider(store),
        task_repo=store,
        issue_repo=store,
        blob_store=LocalBlobStore(settings.blob_dir, settings.photo_bucket, settings.public_base_url),
        geolocation=_geolocation(settings),
        gps_options=_gps_options(settings),
    )


def create_supabase_state(settings) -> AppState:
    from ..storage.supabase_backend import (
        SupabaseBlobStore,
        SupabaseSessionProvider,
        SupabaseTaskRepo,
        create_supabase_client,
    )

    client = create_supabase_client(settings.supabase_url, settings.supabase_key)
    repo = SupabaseTaskRepo(client)
    return AppState(
        settings=settings,
        sessions=SupabaseSessionProvider(client),
        task_repo=repo,
        issue_repo=repo,
        blob_store=SupabaseBlobStore(client, settings.photo_bucket),
        geolocation=_geolocation(settings),
        gps_options=_gps_options(settings),
    )


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if settings.backend == BACKEND_SUPABASE:
        state = create_supabase_state(settings)
    else:
        state = create_local_state(settings)

    logger.info("Backend: %s (bucket=%s)", settings.backend, settings.photo_bucket)
    return state
