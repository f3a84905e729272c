# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Scheduled task registry keyed by entity id.

Queue-entry expiry timers and join-announcement debounces are registered
here under a string key (e.g. ``queue:<participant_id>``). Cancelling is a
dictionary lookup plus ``TimerHandle.cancel()``, so a withdrawn or matched
participant can never be hit by a stale timer.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[None]]


class TaskRegistry:
    """Registry of delayed coroutines, at most one per key."""

    def __init__(self):
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._running: Set[asyncio.Task] = set()

    def schedule(self, key: str, delay: float, factory: TaskFactory) -> None:
        """
        Schedule ``factory()`` to run after ``delay`` seconds.

        An existing timer under the same key is replaced.

        Args:
            key: Entity key
            delay: Delay in seconds
            factory: Zero-argument callable returning the coroutine to run
        """
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(max(delay, 0), self._fire, key, factory)

    def cancel(self, key: str) -> bool:
        """Invalidate the timer for ``key``. Returns True if one was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_pending(self, key: str) -> bool:
        return key in self._handles

    def pending_keys(self) -> Set[str]:
        return set(self._handles)

    def cancel_all(self) -> int:
        """Cancel every pending timer and running callback."""
        count = len(self._handles)
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        for task in list(self._running):
            task.cancel()
        return count

    def _fire(self, key: str, factory: TaskFactory) -> None:
        self._handles.pop(key, None)
        task = asyncio.ensure_future(self._run(key, factory))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, key: str, factory: TaskFactory) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[TaskRegistry] Scheduled task {key} failed: {e}", exc_info=True)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for callbacks that already fired to finish."""
        if self._running:
            await asyncio.wait(set(self._running), timeout=timeout)
