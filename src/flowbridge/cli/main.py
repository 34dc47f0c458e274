# src/flowbridge/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the console REPL on an asyncio loop.
Running timers are left in the timer file on exit and resume on the next start.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if state.session is not None:
        try:
            await state.session.stop()
        except Exception:
            logger.debug("Board session stop failed.", exc_info=True)

    aclose = getattr(state.gateway, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.debug("Gateway close failed.", exc_info=True)

    running = state.timers.running_ids()
    if running:
        logger.info("Leaving %d timer(s) running: %s", len(running), ", ".join(f"#{t}" for t in running))


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)
    try:
        await run_console_loop(state)
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)
    logger.info("Starting %s (server %s)...", settings.app_name, settings.api_base_url)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
