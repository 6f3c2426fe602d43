# src/mr_later/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, restores the previous session (if any),
then runs the console REPL until /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)

WELCOME = (
    "Welcome to Mr. Later!\n"
    "Capture tasks, push them to tomorrow when life happens, and join challenges with friends.\n"
)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)
    try:
        if not state.secure_login.onboarding_seen:
            print(WELCOME)
            state.secure_login.mark_onboarding_seen()

        await state.auth.initialize()
        if state.auth.error:
            logger.warning("Session restore failed: %s", state.auth.error)

        await run_console_loop(state)
    finally:
        await shutdown_state(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    except RuntimeError as e:
        # Missing backend configuration surfaces here.
        logger.error("%s", e)
        raise SystemExit(1) from e
    logger.info("Bye.")


if __name__ == "__main__":
    main()
