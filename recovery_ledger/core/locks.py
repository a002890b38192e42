"""In-process write locks for case ledgers.

Locks are keyed by establishment code: the recovery-cost fields are
replicated across every case of an establishment, so a recompute of one case
also writes its siblings. Row locks taken with ``SELECT ... FOR UPDATE``
extend the same guarantee across worker processes.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Dict

from recovery_ledger.core.config import settings
from recovery_ledger.core.exceptions import ConcurrencyConflict
from recovery_ledger.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CaseLockRegistry:
    """Registry of one ``asyncio.Lock`` per establishment code.

    A lock lives only while some writer holds or awaits it, so the registry
    does not grow with the number of establishments ever written.
    """

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def active_count(self) -> int:
        """Number of establishments with a held or awaited lock."""
        return len(self._locks)

    def _checkout(self, establishment_code: str) -> asyncio.Lock:
        lock = self._locks.get(establishment_code)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[establishment_code] = lock
        self._users[establishment_code] = self._users.get(establishment_code, 0) + 1
        return lock

    def _checkin(self, establishment_code: str) -> None:
        self._users[establishment_code] -= 1
        if not self._users[establishment_code]:
            del self._users[establishment_code]
            del self._locks[establishment_code]

    @asynccontextmanager
    async def hold(self, establishment_code: str) -> AsyncIterator[None]:
        """Hold the write lock for an establishment.

        Raises:
            ConcurrencyConflict: The lock was not released within the timeout
        """
        lock = self._checkout(establishment_code)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                LOGGER.warning(
                    "Timed out waiting for establishment lock",
                    extra={"establishment_code": establishment_code, "timeout": self.timeout_seconds},
                )
                raise ConcurrencyConflict(
                    f"Establishment {establishment_code} is busy; retry the operation", e
                ) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(establishment_code)

    def is_locked(self, establishment_code: str) -> bool:
        lock = self._locks.get(establishment_code)
        return lock is not None and lock.locked()


case_locks = CaseLockRegistry(timeout_seconds=settings.ledger.lock_timeout_seconds)
