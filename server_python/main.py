#!/usr/bin/env python3
"""
Task coordination service entry point
"""
import os
import sys

# line-buffered output so logs show up immediately under nohup
sys.stdout.reconfigure(line_buffering=True)
sys.stderr.reconfigure(line_buffering=True)

# environment must be loaded before the other imports read it
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
import signal

from startup import CoordinatorSettings, build_runtime

logger = logging.getLogger("task_coordination")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def main():
    settings = CoordinatorSettings.from_env()
    configure_logging(settings.log_level)

    logger.info("=" * 50)
    logger.info("Task Coordination Service")
    logger.info("=" * 50)

    # 1. wire the runtime
    logger.info("[1/2] Building coordinator runtime...")
    runtime = build_runtime(settings)

    # 2. recover persisted tasks and start cleanup
    logger.info("[2/2] Recovering tasks...")
    recovered = await runtime.start()
    status = runtime.coordinator.get_system_status()
    logger.info(
        f"Service ready: {recovered} task(s) recovered, "
        f"{status.activeFutures} awaiting completion (pid {os.getpid()})"
    )

    # Graceful shutdown
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await runtime.shutdown()
        logger.info("Service stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nService stopped")
    except Exception as error:
        print(f"Failed to start service: {error}")
        sys.exit(1)
