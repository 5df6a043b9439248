"""helm-lock - run Helm commands under a distributed per-release lock."""

from .client import AsyncLockServiceClient
from .config import LockConfig, Settings, parse_duration
from .exceptions import (
    HelmLockError,
    Interrupted,
    AuthenticationError,
    NetworkError,
    SetupError,
    LockError,
    LockHeldError,
    LockLostError,
    LockTimeoutError,
    ProbeError,
    RecoveryError,
    OperationError,
    SpawnError,
    ValidationError,
)
from .health import ReleaseHealthProbe, ReleaseRecovery
from .helm import HelmClient
from .lock import LockHandle
from .models import (
    LeaseEvent,
    LockInfo,
    LockStatus,
    OperationOutcome,
    OperationRequest,
    OutcomeKind,
    ResourceStatus,
    lock_name_for,
)
from .orchestrator import Orchestrator
from .runner import OperationRunner

__version__ = "0.1.0"
__all__ = [
    "AsyncLockServiceClient",
    "LockConfig",
    "Settings",
    "parse_duration",
    "HelmLockError",
    "Interrupted",
    "AuthenticationError",
    "NetworkError",
    "SetupError",
    "LockError",
    "LockHeldError",
    "LockLostError",
    "LockTimeoutError",
    "ProbeError",
    "RecoveryError",
    "OperationError",
    "SpawnError",
    "ValidationError",
    "ReleaseHealthProbe",
    "ReleaseRecovery",
    "HelmClient",
    "LockHandle",
    "LeaseEvent",
    "LockInfo",
    "LockStatus",
    "OperationOutcome",
    "OperationRequest",
    "OutcomeKind",
    "ResourceStatus",
    "lock_name_for",
    "Orchestrator",
    "OperationRunner",
]
