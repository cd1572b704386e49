#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Rebalancer Keeper – Main Entry Point
====================================
Loads configuration, creates MainCore, and runs it until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
import sys

from rebalancer_keeper.configuration import Configuration
from rebalancer_keeper.loggingconfig import configure_logging, setup_logging
from rebalancer_keeper.main_core import MainCore
from rebalancer_keeper.pyutils.keepererrors import KeeperError

logger = setup_logging("Main", level=logging.INFO)


async def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    try:
        config = Configuration()
        configure_logging(config.LOG_LEVEL, use_json=config.LOG_JSON)
        logger.info("Loaded %r", config)

        core = MainCore(config)
        await core.initialize()
    except (KeeperError, ConnectionError) as exc:
        logger.critical("Startup failed: %s", exc)
        return 1

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, core.request_stop)
    loop.add_signal_handler(signal.SIGTERM, core.request_stop)

    try:
        await core.run()
    finally:
        await core.stop()
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as exc:
        logger.critical("Fatal error: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
