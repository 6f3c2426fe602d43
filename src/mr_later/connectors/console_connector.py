# src/mr_later/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


class ConsoleUnlockPrompt:
    """
    Console stand-in for the device's biometric check: an explicit y/N confirmation.
    """

    async def confirm(self, message: str) -> bool:
        answer = await asyncio.to_thread(input, f"{message}? [y/N] ")
        return answer.strip().lower() in ("y", "yes")


async def run_console_loop(state: AppState) -> None:
    """
    Read slash commands until /exit or EOF.

    input() runs in a worker thread so change-feed resyncs keep flowing on the loop
    while the prompt waits.
    """
    logger.info("Console connector started.")
    command_registry.unlock_prompt = ConsoleUnlockPrompt()

    who = state.auth.user.email if state.auth.user else None
    _print_ts(f"[CONSOLE] Signed in as {who}." if who else "[CONSOLE] Not signed in. Try /login or /unlock.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(state, line)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        _print_ts(reply)

    logger.info("Console connector finished.")
