"""
DocShelf Backend — Per-API Partition Locks
============================================

What:  Mutual exclusion scope keyed by api_id.
How:   One asyncio.Lock per API, created on first use and discarded when the
       last holder or waiter leaves, so the registry only holds busy APIs.
Who:   PageService wraps every write of an API's pages in `hold(api_id)`.

Scope:
    Serializes writes inside one process (one uvicorn worker). Across
    workers, PageRepository.lock_partition() takes a PostgreSQL advisory
    lock for the rest of the transaction.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from docshelf.exceptions import ReorderInProgressError

logger = logging.getLogger(__name__)


class PartitionLocks:
    """Registry of per-API locks."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders + waiters per key; the lock is dropped when it reaches 0
        self._users: Dict[str, int] = {}

    def __contains__(self, api_id: str) -> bool:
        return api_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, api_id: str) -> bool:
        lock = self._locks.get(api_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, api_id: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """
        Hold the lock of `api_id` for the duration of the block.

        Args:
            api_id:  Partition to lock.
            timeout: Seconds to wait for the lock; None waits forever.

        Raises:
            ReorderInProgressError: The lock was not acquired within `timeout`.
        """
        lock = self._locks.setdefault(api_id, asyncio.Lock())
        self._users[api_id] = self._users.get(api_id, 0) + 1
        try:
            if not await _acquire(lock, timeout):
                logger.warning(
                    "Timed out after %.1fs waiting for the page lock of API %s",
                    timeout,
                    api_id,
                )
                raise ReorderInProgressError(api_id=api_id, timeout=timeout)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[api_id] -= 1
            if not self._users[api_id]:
                del self._users[api_id]
                del self._locks[api_id]


async def _acquire(lock: asyncio.Lock, timeout: Optional[float]) -> bool:
    """
    Acquire `lock` within `timeout` seconds; False when the wait timed out.

    The acquire runs as its own task. When the caller gives up (timeout or
    cancellation) that task is cancelled, and if it acquired the lock anyway
    the lock is released as soon as the task finishes.
    """
    if timeout is None:
        return await lock.acquire()

    waiter = asyncio.ensure_future(lock.acquire())
    try:
        done, _ = await asyncio.wait({waiter}, timeout=timeout)
    except BaseException:
        _abandon(lock, waiter)
        raise
    if waiter in done:
        return waiter.result()
    _abandon(lock, waiter)
    return False


def _abandon(lock: asyncio.Lock, waiter: "asyncio.Future[bool]") -> None:
    def release_if_acquired(task: "asyncio.Future[bool]") -> None:
        if not task.cancelled() and task.exception() is None:
            lock.release()

    waiter.cancel()
    waiter.add_done_callback(release_if_acquired)
