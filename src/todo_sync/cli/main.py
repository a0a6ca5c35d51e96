# src/todo_sync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads the active folder once, then
runs the console REPL until /exit (or EOF / Ctrl+C).
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.errors import TodoSyncError, friendly_error_message
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(state: AppState) -> None:
    try:
        try:
            await state.engine.ensure_directory(state.folder)
            docs = await state.engine.refresh()
            logger.info("Loaded %d todos from %s", len(docs), state.folder)
        except TodoSyncError as e:
            # The console still starts; /refresh retries.
            logger.warning("Initial refresh failed: %s", friendly_error_message(e))
        await run_console_loop(state)
    finally:
        await shutdown(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    if not settings.github_configured:
        logger.error(
            "GitHub is not configured. Set TODO_SYNC_GITHUB_TOKEN, TODO_SYNC_GITHUB_OWNER "
            "and TODO_SYNC_GITHUB_REPO (see .env.example)."
        )
        raise SystemExit(2)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
