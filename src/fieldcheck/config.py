# src/fieldcheck/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Local backend works out of the box; Supabase is opt-in.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "FIELDCHECK"

BACKEND_LOCAL = "local"
BACKEND_SUPABASE = "supabase"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        val = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return None
    return val if math.isfinite(val) else None


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Backend ----
    backend: str
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    photo_bucket: str
    staff_role: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    blob_dir: Path
    public_base_url: str

    # ---- Geolocation ----
    gps_timeout_ms: int
    gps_high_accuracy: bool
    gps_max_age_ms: int
    gps_fixed_lat: Optional[float]
    gps_fixed_lng: Optional[float]

    # ---- Console auto sign-in ----
    staff_email: Optional[str]
    staff_password: Optional[str]
    seed_demo: bool

    @property
    def geolocation_available(self) -> bool:
        return self.gps_fixed_lat is not None and self.gps_fixed_lng is not None

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "fieldcheck")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        supabase_url = _first_env(_k("SUPABASE_URL"), "SUPABASE_URL", default=None)
        supabase_key = _first_env(
            _k("SUPABASE_KEY"), "SUPABASE_ANON_KEY", "SUPABASE_KEY", default=None
        )
        default_backend = BACKEND_SUPABASE if supabase_url and supabase_key else BACKEND_LOCAL
        backend = _env(_k("BACKEND"), default_backend).strip().lower()
        if backend not in (BACKEND_LOCAL, BACKEND_SUPABASE):
            logger.warning("Unknown backend %r; using %s", backend, BACKEND_LOCAL)
            backend = BACKEND_LOCAL

        photo_bucket = _env(_k("PHOTO_BUCKET"), "completion-photos")
        staff_role = _env(_k("STAFF_ROLE"), "staff")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/fieldcheck"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        blob_dir = _env_path(_k("BLOB_DIR"), data_dir / "storage")
        public_base_url = _env(_k("PUBLIC_BASE_URL"), "")

        gps_timeout_ms = max(1, _env_int(_k("GPS_TIMEOUT_MS"), 15_000))
        gps_high_accuracy = _env_bool(_k("GPS_HIGH_ACCURACY"), True)
        gps_max_age_ms = max(0, _env_int(_k("GPS_MAX_AGE_MS"), 0))
        gps_fixed_lat = _env_float(_k("GPS_LAT"))
        gps_fixed_lng = _env_float(_k("GPS_LNG"))

        staff_email = _first_env(_k("STAFF_EMAIL"), default=None)
        staff_password = _first_env(_k("STAFF_PASSWORD"), default=None)
        seed_demo = _env_bool(_k("SEED_DEMO"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            backend=backend,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            photo_bucket=photo_bucket,
            staff_role=staff_role,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            blob_dir=blob_dir,
            public_base_url=public_base_url,
            gps_timeout_ms=gps_timeout_ms,
            gps_high_accuracy=gps_high_accuracy,
            gps_max_age_ms=gps_max_age_ms,
            gps_fixed_lat=gps_fixed_lat,
            gps_fixed_lng=gps_fixed_lng,
            staff_email=staff_email,
            staff_password=staff_password,
            seed_demo=seed_demo,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
