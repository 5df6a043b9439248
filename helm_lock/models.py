"""helm-lock data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


LOCK_PREFIX = "helm-lock-"


def lock_name_for(resource_name: str) -> str:
    """Derive the lock name guarding a release."""
    return LOCK_PREFIX + resource_name


class LockStatus(str, Enum):
    """Lock status enumeration."""
    FREE = "free"
    HELD = "held"


class LeaseEvent(str, Enum):
    """Ownership transitions reported by a lock handle."""
    ACQUIRED = "acquired"
    LOST = "lost"


class ResourceStatus(str, Enum):
    """Health classification of a release."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class OutcomeKind(str, Enum):
    """Terminal result kinds of one orchestration run."""
    SUCCEEDED = "succeeded"
    SETUP_FAILED = "setup_failed"
    RECOVERY_FAILED = "recovery_failed"
    LOCK_TIMED_OUT = "lock_timed_out"
    OPERATION_FAILED = "operation_failed"


_EXIT_CODES = {
    OutcomeKind.SUCCEEDED: 0,
    OutcomeKind.SETUP_FAILED: 2,
    OutcomeKind.RECOVERY_FAILED: 3,
    OutcomeKind.LOCK_TIMED_OUT: 4,
}


@dataclass
class LockInfo:
    """Information about a lock."""
    name: str
    status: LockStatus
    holder_id: Optional[str]
    fencing_token: int
    expires_at: Optional[str]


@dataclass
class AcquireResult:
    """Result of lock acquisition attempt."""
    status: str
    lease_id: Optional[str] = None
    fencing_token: Optional[int] = None
    expires_at: Optional[str] = None
    holder_id: Optional[str] = None


@dataclass
class RenewResult:
    """Result of lock renewal."""
    lease_id: str
    expires_at: str


@dataclass(frozen=True)
class LeaseTiming:
    """Leader election timing, in seconds."""
    lease_duration: float = 15.0
    renew_deadline: float = 10.0
    retry_period: float = 2.0

    @property
    def ttl(self) -> int:
        return max(1, int(round(self.lease_duration)))


@dataclass(frozen=True)
class OperationRequest:
    """The helm invocation to run while holding the release lock."""
    command: str
    resource_name: str
    args: Tuple[str, ...] = ()
    flags: Tuple[str, ...] = ()

    def argv(self) -> List[str]:
        return [self.command, *self.args, *self.flags]


@dataclass
class OperationOutcome:
    """Terminal result of one orchestration run."""
    kind: OutcomeKind
    cause: Optional[BaseException] = field(default=None, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCEEDED

    @property
    def exit_code(self) -> int:
        if self.kind is OutcomeKind.OPERATION_FAILED:
            code = getattr(self.cause, "exit_code", None)
            # negative codes mean the child died from a signal
            return code if code and code > 0 else 1
        return _EXIT_CODES[self.kind]

    def __str__(self) -> str:
        if self.cause is None:
            return self.kind.value
        return f"{self.kind.value}: {self.cause}"
