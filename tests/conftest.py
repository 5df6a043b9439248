import asyncio
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

import pytest

from helm_lock.exceptions import (
    LockError,
    LockHeldError,
    NetworkError,
    OperationError,
    ProbeError,
    RecoveryError,
    SetupError,
)
from helm_lock.models import AcquireResult, LeaseEvent, RenewResult, ResourceStatus


@dataclass
class _Lease:
    lease_id: str
    holder_id: Optional[str]
    expires: float


class InMemoryLockBackend:
    """Lock service stand-in sharing state between handles in one process."""

    def __init__(self):
        self.leases: Dict[str, _Lease] = {}
        self.calls = Counter()
        self.healthy = True

    async def health(self) -> str:
        if not self.healthy:
            raise NetworkError("connection refused")
        return "ok"

    async def acquire_lock(self, name, ttl=60, holder_id=None):
        self.calls["acquire"] += 1
        now = time.monotonic()
        lease = self.leases.get(name)
        if lease is not None and lease.expires > now:
            raise LockHeldError(f"Lock '{name}' is already held", holder_id=lease.holder_id)
        lease_id = uuid.uuid4().hex
        self.leases[name] = _Lease(lease_id, holder_id, now + ttl)
        return AcquireResult(status="acquired", lease_id=lease_id, holder_id=holder_id)

    async def renew_lock(self, name, lease_id, ttl=60):
        self.calls["renew"] += 1
        lease = self.leases.get(name)
        if lease is None or lease.lease_id != lease_id:
            raise LockError("lease is not held")
        lease.expires = time.monotonic() + ttl
        return RenewResult(lease_id=lease_id, expires_at="soon")

    async def release_lock(self, name, lease_id):
        self.calls["release"] += 1
        lease = self.leases.get(name)
        if lease is not None and lease.lease_id == lease_id:
            del self.leases[name]

    def holder(self, name) -> Optional[str]:
        lease = self.leases.get(name)
        return lease.holder_id if lease else None


class FakeLock:
    """Lock handle double that counts releases."""

    def __init__(self, grant: bool = True, setup_error: bool = False):
        self.grant = grant
        self.setup_error = setup_error
        self.events: Optional[asyncio.Queue] = None
        self.lock_name = None
        self.identity = None
        self.acquires = 0
        self.releases = 0

    async def acquire(self, lock_name, identity, lease_duration=15.0, renew_deadline=10.0, retry_period=2.0):
        self.acquires += 1
        self.lock_name = lock_name
        self.identity = identity
        if self.setup_error:
            raise SetupError("lock service is not available")
        self.events = asyncio.Queue()
        if self.grant:
            self.events.put_nowait(LeaseEvent.ACQUIRED)
        return self.events

    async def release(self):
        self.releases += 1

    def lose(self):
        self.events.put_nowait(LeaseEvent.LOST)


class FakeProbe:
    def __init__(self, status=ResourceStatus.HEALTHY, calls: List[str] = None, fail_on: int = None):
        self.status = status
        self.calls = calls if calls is not None else []
        self.fail_on = fail_on
        self.count = 0

    async def probe(self, name):
        self.count += 1
        self.calls.append("probe")
        if self.fail_on == self.count:
            raise ProbeError("failed to check release status: forbidden")
        return self.status


class FakeRecovery:
    def __init__(self, calls: List[str], error: bool = False, delay: float = 0):
        self.calls = calls
        self.error = error
        self.delay = delay
        self.count = 0

    async def recover(self, name):
        self.count += 1
        self.calls.append("recover")
        await asyncio.sleep(self.delay)
        if self.error:
            raise RecoveryError("rollback failed: no previous revision")


class FakeRunner:
    def __init__(self, calls: List[str], exit_code: int = 0, delay: float = 0, hook=None, error=None):
        self.calls = calls
        self.error = error
        self.exit_code = exit_code
        self.delay = delay
        self.hook = hook
        self.count = 0
        self.cancelled = False
        self.active = 0
        self.max_active = 0

    async def run(self, request):
        self.count += 1
        self.calls.append("run")
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.hook is not None:
                self.hook()
            if self.error is not None:
                raise self.error
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        finally:
            self.active -= 1
        if self.exit_code:
            raise OperationError(f"helm {request.command} exited with status {self.exit_code}", exit_code=self.exit_code)


@pytest.fixture
def backend():
    return InMemoryLockBackend()


@pytest.fixture
def calls():
    return []


@pytest.fixture(autouse=True)
def _restore_package_logger():
    # the CLI reconfigures the package logger; keep that from leaking between tests
    log = logging.getLogger("helm_lock")
    saved = (log.handlers[:], log.level, log.propagate)
    yield
    log.handlers[:], log.level, log.propagate = saved
