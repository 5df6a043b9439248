"""Leader election over the lock service.

A ``LockHandle`` contends for one named lease in the background and reports
ownership changes through an ``asyncio.Queue`` of ``LeaseEvent`` values.
Acquisition is never reported synchronously: callers race the queue against
their own deadline.
"""

import asyncio
import logging
from typing import Optional, Protocol

from .exceptions import (
    HelmLockError,
    LockError,
    LockHeldError,
    NetworkError,
    SetupError,
)
from .models import AcquireResult, LeaseEvent, LeaseTiming, RenewResult

logger = logging.getLogger(__name__)


class LockBackend(Protocol):
    """What a lock handle needs from the coordination service."""

    async def health(self) -> str: ...

    async def acquire_lock(self, name: str, ttl: int = 60, holder_id: str = None) -> AcquireResult: ...

    async def renew_lock(self, name: str, lease_id: str, ttl: int = 60) -> RenewResult: ...

    async def release_lock(self, name: str, lease_id: str) -> None: ...


def _check_timing(timing: LeaseTiming) -> None:
    if min(timing.lease_duration, timing.renew_deadline, timing.retry_period) <= 0:
        raise SetupError("lease timings must be positive")
    if timing.renew_deadline >= timing.lease_duration:
        raise SetupError("renew deadline must be shorter than the lease duration")
    if timing.retry_period >= timing.renew_deadline:
        raise SetupError("retry period must be shorter than the renew deadline")


class LockHandle:
    """A single contender for a namespaced lease."""

    def __init__(self, backend: LockBackend, namespace: str):
        self.backend = backend
        self.namespace = namespace
        self.key: Optional[str] = None
        self.identity: Optional[str] = None
        self.timing = LeaseTiming()
        self.last_holder: Optional[str] = None
        self.failure: Optional[HelmLockError] = None

        self._events: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.Future] = None
        self._lease_id: Optional[str] = None
        self._released = False

    @property
    def held(self) -> bool:
        return self._lease_id is not None

    async def acquire(
        self,
        lock_name: str,
        identity: str,
        lease_duration: float = 15.0,
        renew_deadline: float = 10.0,
        retry_period: float = 2.0,
    ) -> asyncio.Queue:
        """Start contending for ``lock_name``.

        Returns the queue on which ACQUIRED and LOST are announced. Raises
        SetupError straight away when the backend is unusable.
        """
        if self._task is not None or self._released:
            raise LockError(f"lock handle for '{self.key}' was already started")

        timing = LeaseTiming(lease_duration, renew_deadline, retry_period)
        _check_timing(timing)

        try:
            await self.backend.health()
        except HelmLockError as e:
            raise SetupError(f"lock service is not available: {e}") from e

        self.key = f"{self.namespace}.{lock_name}"
        self.identity = identity
        self.timing = timing
        self._events = asyncio.Queue()
        self._task = asyncio.ensure_future(self._elect())
        return self._events

    async def _elect(self) -> None:
        try:
            await self._contend()
        except HelmLockError as e:
            logger.warning("Giving up on lock '%s': %s", self.key, e)
            self.failure = e
            self._events.put_nowait(LeaseEvent.LOST)
            return

        logger.debug("Lock '%s' acquired by %s", self.key, self.identity)
        self._events.put_nowait(LeaseEvent.ACQUIRED)

        if not await self._renew_until_lost():
            self._lease_id = None
            self._events.put_nowait(LeaseEvent.LOST)

    async def _contend(self) -> None:
        while True:
            # shielded so release() can settle a grant that races cancellation
            self._pending = asyncio.ensure_future(
                self.backend.acquire_lock(self.key, self.timing.ttl, self.identity)
            )
            try:
                result = await asyncio.shield(self._pending)
            except LockHeldError as e:
                if e.holder_id and e.holder_id != self.last_holder:
                    logger.info("Lock '%s' is held by %s, waiting", self.key, e.holder_id)
                self.last_holder = e.holder_id
            except NetworkError as e:
                logger.debug("Lock service unreachable, retrying: %s", e)
            else:
                self._pending = None
                self._lease_id = result.lease_id
                return
            self._pending = None
            await asyncio.sleep(self.timing.retry_period)

    async def _renew_until_lost(self) -> bool:
        loop = asyncio.get_running_loop()
        last_renewed = loop.time()
        while True:
            await asyncio.sleep(self.timing.retry_period)
            try:
                await self.backend.renew_lock(self.key, self._lease_id, self.timing.ttl)
            except NetworkError as e:
                if loop.time() - last_renewed >= self.timing.renew_deadline:
                    logger.warning("Could not renew lock '%s' before the deadline: %s", self.key, e)
                    return False
                logger.debug("Renewal of '%s' failed, retrying: %s", self.key, e)
            except HelmLockError as e:
                logger.warning("Lost lock '%s': %s", self.key, e)
                return False
            else:
                last_renewed = loop.time()

    async def release(self) -> None:
        """Stop contending and give the lease back, at most once."""
        if self._released:
            return
        self._released = True

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        if self._pending is not None:
            try:
                result = await self._pending
            except HelmLockError:
                result = None
            self._pending = None
            if result is not None:
                self._lease_id = result.lease_id

        if self._lease_id is None:
            return

        lease_id, self._lease_id = self._lease_id, None
        try:
            await self.backend.release_lock(self.key, lease_id)
            logger.debug("Released lock '%s'", self.key)
        except HelmLockError as e:
            logger.warning("Failed to release lock '%s', it will expire on its own: %s", self.key, e)
        self._events.put_nowait(LeaseEvent.LOST)
