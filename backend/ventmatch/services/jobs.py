# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Periodic background jobs.

- queue sweep: drops queue entries past their deadline
- session sweep: cleans ended sessions and expires over-age ones
- restriction sweep: deactivates expired restrictions

Each job runs as its own asyncio task; a failing iteration is logged and the
loop continues.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List

from fastapi import FastAPI

from ventmatch.services.container import ServiceContainer

logger = logging.getLogger(__name__)


async def run_periodic(
    name: str, interval_seconds: float, job: Callable[[], Awaitable[int]]
) -> None:
    """Run ``job`` every ``interval_seconds`` until cancelled."""
    logger.info(f"[Jobs] Starting {name} (every {interval_seconds}s)")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Jobs] Unexpected error in {name}: {e}", exc_info=True)


def start_background_jobs(app: FastAPI) -> None:
    """Start the periodic sweeps for the container on ``app.state``."""
    container: ServiceContainer = app.state.services
    settings = container.settings
    jobs = [
        (
            "queue sweep",
            settings.QUEUE_CLEANUP_INTERVAL_SECONDS,
            container.matching.cleanup_expired_entries,
        ),
        (
            "session sweep",
            settings.SESSION_SWEEP_INTERVAL_SECONDS,
            container.sessions.sweep,
        ),
        (
            "restriction sweep",
            settings.RESTRICTION_CLEANUP_INTERVAL_SECONDS,
            container.moderation.cleanup_expired_restrictions,
        ),
    ]
    app.state.background_tasks = [
        asyncio.create_task(run_periodic(name, interval, job))
        for name, interval, job in jobs
    ]


async def stop_background_jobs(app: FastAPI) -> None:
    """Cancel the periodic sweeps and wait for them to finish."""
    tasks: List[asyncio.Task] = getattr(app.state, "background_tasks", [])
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    app.state.background_tasks = []
    logger.info("[Jobs] Background jobs stopped")
