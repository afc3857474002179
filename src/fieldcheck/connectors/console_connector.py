# src/fieldcheck/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import datetime

from ..cli.commands import CommandError
from ..cli.commands import registry as command_registry
from ..core.session import AuthError
from ..core.state import AppState
from ..workflow.errors import CompletionError

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class _LineReader:
    """
    Reads console lines on a daemon thread and hands them to the loop.

    asyncio.run() does not wait for daemon threads on shutdown, so a
    pending input() never keeps the process alive after Ctrl-C.
    """

    def __init__(self, read: Callable[[], str]) -> None:
        self._read = read
        self._loop = asyncio.get_running_loop()
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._thread = threading.Thread(target=self._pump, name="console-input", daemon=True)
        self._thread.start()

    def _pump(self) -> None:
        while True:
            try:
                line: str | None = self._read()
            except EOFError:
                line = None
            except Exception:
                logger.exception("Console input failed.")
                line = None
            try:
                self._loop.call_soon_threadsafe(self._lines.put_nowait, line)
            except RuntimeError:
                # Event loop already closed.
                return
            if line is None:
                return

    async def readline(self, prompt: str) -> str:
        """Next input line; EOFError once input is exhausted."""
        print(prompt, end="", flush=True)
        line = await self._lines.get()
        if line is None:
            raise EOFError
        return line


async def run_command(state: AppState, line: str) -> str | None:
    """Run one console line; every failure becomes a printable message."""
    try:
        return await command_registry.handle(state, line, emit=_print_ts)
    except (AuthError, CompletionError) as e:
        logger.info("Command %r failed: %s", line.split(" ", 1)[0], e.message)
        return e.message
    except CommandError as e:
        return str(e)
    except Exception:
        logger.exception("Command handler crashed.")
        return "Something went wrong."


async def run_console_loop(state: AppState, *, read: Callable[[], str] = input) -> None:
    logger.info("Console connector started.")
    app_name = str(getattr(getattr(state, "settings", None), "app_name", "fieldcheck"))
    _print_ts(f"[{app_name}] Use /help for commands. Use /exit to quit.\n")

    reader = _LineReader(read)
    while True:
        try:
            user_input = (await reader.readline(">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except asyncio.CancelledError:
            # Ctrl-C: asyncio.run cancels this task, then raises KeyboardInterrupt.
            logger.info("Console interrupted, exiting.")
            print()
            raise

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        response = await run_command(state, user_input)
        if response is None:
            _print_ts("Commands start with '/'. Use /help to list them.")
            continue
        _print_ts(response)

    logger.info("Console connector finished.")
