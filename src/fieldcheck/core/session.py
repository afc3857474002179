# src/fieldcheck/core/session.py

from __future__ import annotations

"""
Staff session gate.

The workflow receives an explicit WorkflowContext instead of looking up the
session ambiently. A context is resolved once per workflow invocation and is
immutable afterwards.
"""

import contextlib
import logging
from dataclasses import dataclass

from .ports import SessionProvider

logger = logging.getLogger(__name__)

STAFF_ROLE = "staff"


class AuthError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidCredentialsError(AuthError):
    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or "Invalid login credentials.")


class NotAuthenticatedError(AuthError):
    def __init__(self) -> None:
        super().__init__("Not signed in. Use /login <email> <password>.")


class RoleLookupError(AuthError):
    def __init__(self) -> None:
        super().__init__("Failed to verify user role.")


class AccessDeniedError(AuthError):
    def __init__(self) -> None:
        super().__init__("Access denied. Staff account required.")


@dataclass(slots=True, frozen=True)
class WorkflowContext:
    user_id: str
    role: str
    email: str | None = None


async def _check_role(
    provider: SessionProvider,
    user_id: str,
    email: str | None,
    required_role: str,
) -> WorkflowContext:
    try:
        role = await provider.get_user_role(user_id)
    except Exception:
        logger.exception("Role lookup failed user_id=%s", user_id)
        with contextlib.suppress(Exception):
            await provider.sign_out()
        raise RoleLookupError()

    if role is None:
        logger.warning("No role for user_id=%s", user_id)
        await provider.sign_out()
        raise RoleLookupError()

    if role != required_role:
        logger.warning("Access denied user_id=%s role=%s", user_id, role)
        await provider.sign_out()
        raise AccessDeniedError()

    return WorkflowContext(user_id=user_id, role=role, email=email)


async def sign_in(
    provider: SessionProvider,
    email: str,
    password: str,
    *,
    required_role: str = STAFF_ROLE,
) -> WorkflowContext:
    """Password sign-in followed by the role gate. Non-staff users are signed out again."""
    session = await provider.sign_in(email, password)
    ctx = await _check_role(provider, session.user_id, session.email or email, required_role)
    logger.info("Signed in user_id=%s role=%s", ctx.user_id, ctx.role)
    return ctx


async def resolve_context(
    provider: SessionProvider,
    *,
    required_role: str = STAFF_ROLE,
) -> WorkflowContext:
    session = await provider.get_current_session()
    if session is None:
        raise NotAuthenticatedError()
    return await _check_role(provider, session.user_id, session.email, required_role)


async def sign_out(provider: SessionProvider) -> None:
    await provider.sign_out()
    logger.info("Signed out.")
