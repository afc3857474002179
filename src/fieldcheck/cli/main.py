# src/fieldcheck/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, optionally signs in with configured
credentials, then runs the console REPL on an asyncio event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.session import AuthError, NotAuthenticatedError, resolve_context, sign_in
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _auto_sign_in(state: AppState) -> None:
    """Restore an existing session, else sign in with configured credentials."""
    settings = state.settings
    try:
        state.context = await resolve_context(state.sessions, required_role=settings.staff_role)
        print(f"Session restored for {state.context.email or state.context.user_id}.")
        return
    except NotAuthenticatedError:
        pass
    except AuthError as e:
        logger.warning("Stored session rejected: %s", e.message)

    if not (settings.staff_email and settings.staff_password):
        return
    try:
        state.context = await sign_in(
            state.sessions,
            settings.staff_email,
            settings.staff_password,
            required_role=settings.staff_role,
        )
        print(f"Signed in as {state.context.email or state.context.user_id}.")
    except AuthError as e:
        logger.warning("Auto sign-in failed: %s", e.message)
        print(f"Auto sign-in failed: {e.message}")


async def _run(state: AppState) -> None:
    await _auto_sign_in(state)
    try:
        await run_console_loop(state)
    finally:
        pending = state.completion.draft.location.pending if state.completion else None
        if pending is not None:
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pending


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=max(console_level, logging.WARNING))

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    if not settings.console_enabled:
        logger.info("Console disabled; nothing to run.")
        return

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        task_store = state.task_repo
        if hasattr(task_store, "close"):
            task_store.close()
        logger.info("Bye.")


if __name__ == "__main__":
    main()
