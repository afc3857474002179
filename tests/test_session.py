# tests/test_session.py

from __future__ import annotations

import pytest

from fieldcheck.core.ports import Session
from fieldcheck.core.session import (
    AccessDeniedError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    RoleLookupError,
    resolve_context,
    sign_in,
)

from .fakes import FakeSessionProvider


def _provider(role: str | None = "staff") -> FakeSessionProvider:
    roles = {"u1": role} if role is not None else {}
    return FakeSessionProvider(accounts={"ravi@example.com": ("pw", "u1")}, roles=roles)


@pytest.mark.asyncio
async def test_staff_sign_in_yields_context() -> None:
    provider = _provider()

    ctx = await sign_in(provider, "ravi@example.com", "pw")

    assert (ctx.user_id, ctx.role, ctx.email) == ("u1", "staff", "ravi@example.com")
    assert provider.sign_outs == 0


@pytest.mark.asyncio
async def test_non_staff_is_denied_and_signed_out() -> None:
    provider = _provider(role="admin")

    with pytest.raises(AccessDeniedError) as exc_info:
        await sign_in(provider, "ravi@example.com", "pw")

    assert exc_info.value.message == "Access denied. Staff account required."
    assert provider.sign_outs == 1
    assert provider.session is None


@pytest.mark.asyncio
async def test_missing_role_fails_verification() -> None:
    provider = _provider(role=None)

    with pytest.raises(RoleLookupError) as exc_info:
        await sign_in(provider, "ravi@example.com", "pw")

    assert exc_info.value.message == "Failed to verify user role."
    assert provider.sign_outs == 1


@pytest.mark.asyncio
async def test_role_lookup_error_signs_out() -> None:
    provider = _provider()
    provider.role_error = RuntimeError("users table unavailable")

    with pytest.raises(RoleLookupError):
        await sign_in(provider, "ravi@example.com", "pw")

    assert provider.sign_outs == 1


@pytest.mark.asyncio
async def test_wrong_password_propagates() -> None:
    with pytest.raises(InvalidCredentialsError):
        await sign_in(_provider(), "ravi@example.com", "nope")


@pytest.mark.asyncio
async def test_resolve_context_requires_session() -> None:
    provider = _provider()

    with pytest.raises(NotAuthenticatedError):
        await resolve_context(provider)

    provider.session = Session(user_id="u1", email="ravi@example.com")
    ctx = await resolve_context(provider)
    assert ctx.user_id == "u1"
