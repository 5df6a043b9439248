"""Acquire the release lock, repair the release if needed, then run helm.

One ``Orchestrator.run`` walks through::

    init -> probing health -> acquiring lock -> [recovering] -> executing -> releasing -> done

under a single deadline. Whatever happens, the lock handle is released
exactly once and exactly one ``OperationOutcome`` comes back.
"""

import asyncio
import logging
import secrets
import time
from enum import Enum
from typing import Awaitable, Callable, Protocol

from .config import LockConfig
from .exceptions import (
    HelmLockError,
    LockError,
    LockLostError,
    LockTimeoutError,
    OperationError,
    ProbeError,
    RecoveryError,
    SetupError,
)
from .models import (
    LeaseEvent,
    OperationOutcome,
    OperationRequest,
    OutcomeKind,
    ResourceStatus,
    lock_name_for,
)

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    INIT = "init"
    PROBING_HEALTH = "probing-health"
    ACQUIRING_LOCK = "acquiring-lock"
    RECOVERING = "recovering"
    EXECUTING = "executing"
    RELEASING = "releasing"
    DONE = "done"


class HealthProbe(Protocol):
    async def probe(self, name: str) -> ResourceStatus: ...


class RecoveryAction(Protocol):
    async def recover(self, name: str) -> None: ...


class Runner(Protocol):
    async def run(self, request: OperationRequest) -> None: ...


class Lock(Protocol):
    async def acquire(
        self,
        lock_name: str,
        identity: str,
        lease_duration: float = 15.0,
        renew_deadline: float = 10.0,
        retry_period: float = 2.0,
    ) -> asyncio.Queue: ...

    async def release(self) -> None: ...


def holder_identity(command: str) -> str:
    """Build a contender identity; only ever shown to humans."""
    return f"helm-lock-{command}-{int(time.time())}-{secrets.token_hex(4)}"


class Orchestrator:
    def __init__(
        self,
        probe: HealthProbe,
        recovery: RecoveryAction,
        runner: Runner,
        lock_factory: Callable[[], Lock],
        config: LockConfig = None,
    ):
        self.probe = probe
        self.recovery = recovery
        self.runner = runner
        self.lock_factory = lock_factory
        self.config = config or LockConfig()
        self.phase = Phase.INIT

    def _enter(self, phase: Phase) -> None:
        logger.debug("phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    async def run(self, request: OperationRequest) -> OperationOutcome:
        self.phase = Phase.INIT
        lock = self.lock_factory()
        try:
            return await self._run(request, lock)
        finally:
            self._enter(Phase.RELEASING)
            await lock.release()
            self._enter(Phase.DONE)

    async def _run(self, request: OperationRequest, lock: Lock) -> OperationOutcome:
        name = request.resource_name
        if not name:
            return OperationOutcome(OutcomeKind.SETUP_FAILED, SetupError("release name is required"))

        self._enter(Phase.PROBING_HEALTH)
        logger.info("Checking release '%s'", name)
        try:
            status = await self.probe.probe(name)
        except ProbeError as e:
            return OperationOutcome(OutcomeKind.SETUP_FAILED, e)
        logger.debug("Release '%s' status before locking: %s", name, status.value)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.lock_timeout

        self._enter(Phase.ACQUIRING_LOCK)
        lock_name = lock_name_for(name)
        try:
            events = await lock.acquire(
                lock_name,
                holder_identity(request.command),
                lease_duration=self.config.lease_duration,
                renew_deadline=self.config.renew_deadline,
                retry_period=self.config.retry_period,
            )
        except HelmLockError as e:
            return OperationOutcome(OutcomeKind.SETUP_FAILED, e)

        try:
            await self._await_ownership(events, deadline)
        except LockTimeoutError as e:
            logger.error("Failed to acquire lock '%s' within %.0fs", lock_name, self.config.lock_timeout)
            return OperationOutcome(OutcomeKind.LOCK_TIMED_OUT, e)
        except LockError as e:
            return OperationOutcome(OutcomeKind.SETUP_FAILED, e)
        logger.info("Acquired lock '%s' for %s operation", lock_name, request.command)

        if self.config.recheck_health:
            try:
                status = await self.probe.probe(name)
            except ProbeError as e:
                return OperationOutcome(OutcomeKind.SETUP_FAILED, e)

        if status is ResourceStatus.DEGRADED:
            self._enter(Phase.RECOVERING)
            logger.info("Release '%s' is degraded, performing rollback first", name)
            try:
                await self._guarded(self.recovery.recover(name), events, deadline)
            except LockTimeoutError as e:
                return OperationOutcome(OutcomeKind.LOCK_TIMED_OUT, e)
            except LockLostError as e:
                return OperationOutcome(OutcomeKind.RECOVERY_FAILED, e)
            except RecoveryError as e:
                logger.error("Rollback of '%s' failed, manual intervention required", name)
                return OperationOutcome(OutcomeKind.RECOVERY_FAILED, e)

        self._enter(Phase.EXECUTING)
        try:
            await self._guarded(self.runner.run(request), events, deadline)
        except LockTimeoutError as e:
            logger.error("%s %s did not finish before the lock timeout", request.command, name)
            return OperationOutcome(OutcomeKind.LOCK_TIMED_OUT, e)
        except (LockLostError, OperationError) as e:
            return OperationOutcome(OutcomeKind.OPERATION_FAILED, e)

        return OperationOutcome(OutcomeKind.SUCCEEDED)

    def _remaining(self, deadline: float) -> float:
        return max(0.0, deadline - asyncio.get_running_loop().time())

    async def _await_ownership(self, events: asyncio.Queue, deadline: float) -> None:
        """Wait for ACQUIRED, or fail once the deadline passes first."""
        getter = asyncio.ensure_future(events.get())
        try:
            done, _ = await asyncio.wait({getter}, timeout=self._remaining(deadline))
        finally:
            if not getter.done():
                getter.cancel()
        if getter not in done:
            raise LockTimeoutError("failed to acquire lock before the lock timeout")
        if getter.result() is not LeaseEvent.ACQUIRED:
            raise LockError("stopped contending for the lock before acquiring it")

    async def _wait_for_loss(self, events: asyncio.Queue) -> None:
        while await events.get() is not LeaseEvent.LOST:
            pass

    async def _guarded(self, work: Awaitable[None], events: asyncio.Queue, deadline: float) -> None:
        """Run ``work`` until it finishes, the lease is lost, or the deadline passes.

        When ``work`` is done it wins, even if the other two fired in the
        same iteration. Otherwise it is cancelled before we return.
        """
        work = asyncio.ensure_future(work)
        lost = asyncio.ensure_future(self._wait_for_loss(events))
        try:
            done, _ = await asyncio.wait(
                {work, lost},
                timeout=self._remaining(deadline),
                return_when=asyncio.FIRST_COMPLETED,
            )
            if work in done:
                return work.result()
            if lost in done:
                raise LockLostError("lost the lock while holding it")
            raise LockTimeoutError("operation timed out while holding the lock")
        finally:
            for task in (work, lost):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work, lost, return_exceptions=True)
