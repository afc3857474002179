# src/fieldcheck/storage/local.py

from __future__ import annotations

"""
Local backend: filesystem blob store and a SQLite-backed session provider.

Used for development and demos when no Supabase project is configured.
"""

import asyncio
import logging
import os
from pathlib import Path
from urllib.parse import quote

from ..core.ports import Session, UserProfile
from ..core.session import InvalidCredentialsError
from ..tasks.task_store import TaskStore, verify_password

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """
    Bucket directory on disk.

    Public references are `<public_base_url>/<bucket>/<name>`; when no base
    URL is configured a file:// URI is returned.
    """

    def __init__(self, root: str | Path, bucket: str, public_base_url: str = "") -> None:
        self._bucket = bucket
        self._dir = Path(root) / bucket
        self._dir.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    def _path_for(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValueError(f"invalid object name: {name!r}")
        return self._dir / name

    def _write(self, path: Path, data: bytes, overwrite: bool) -> None:
        if path.exists() and not overwrite:
            raise FileExistsError(f"The resource already exists: {path.name}")
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    async def upload(
        self,
        name: str,
        data: bytes,
        *,
        content_type: str,
        overwrite: bool = True,
    ) -> None:
        path = self._path_for(name)
        await asyncio.to_thread(self._write, path, data, overwrite)
        logger.info("Stored %s/%s (%d bytes, %s)", self._bucket, name, len(data), content_type)

    def get_public_reference(self, name: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{quote(self._bucket)}/{quote(name)}"
        return self._path_for(name).resolve().as_uri()


class LocalSessionProvider:
    """SessionProvider over the users table of the local TaskStore."""

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._session: Session | None = None

    def _check_credentials(self, email: str, password: str) -> Session | None:
        # Runs in a worker thread: PBKDF2 verification must stay off the event loop.
        row = self._store.find_user_by_email(email)
        if row is None or not verify_password(password, row["password_hash"]):
            return None
        return Session(user_id=row["id"], email=row["email"])

    async def sign_in(self, email: str, password: str) -> Session:
        session = await asyncio.to_thread(self._check_credentials, email, password)
        if session is None:
            logger.info("Sign-in rejected for %s", email)
            raise InvalidCredentialsError()
        self._session = session
        return session

    async def sign_out(self) -> None:
        self._session = None

    async def get_current_session(self) -> Session | None:
        return self._session

    async def get_user_role(self, user_id: str) -> str | None:
        return await asyncio.to_thread(self._store.get_role, user_id)

    async def get_user_profile(self, user_id: str) -> UserProfile | None:
        row = await asyncio.to_thread(self._store.get_user, user_id)
        if row is None:
            return None
        return UserProfile(name=row["name"], department=row["department"])
