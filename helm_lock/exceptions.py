"""helm-lock exception classes."""

from typing import Optional


class HelmLockError(Exception):
    """Base exception for all helm-lock errors."""
    pass


class ValidationError(HelmLockError):
    """Raised when input validation fails."""
    pass


class NetworkError(HelmLockError):
    """Raised when the lock service cannot be reached or answers garbage."""
    pass


class AuthenticationError(HelmLockError):
    """Raised when the lock service rejects our token."""
    pass


class SetupError(HelmLockError):
    """Raised when a run cannot start: bad input or unreachable collaborators."""
    pass


class LockError(HelmLockError):
    """Raised when lock operations fail."""
    pass


class LockHeldError(LockError):
    """Raised when trying to acquire a lock that's already held."""

    def __init__(self, message: str, holder_id: str = None, expires_at: str = None):
        super().__init__(message)
        self.holder_id = holder_id
        self.expires_at = expires_at


class LockLostError(LockError):
    """Raised when ownership of a held lock is lost involuntarily."""
    pass


class LockTimeoutError(LockError):
    """Raised when the overall deadline elapses before the work is done."""
    pass


class ProbeError(HelmLockError):
    """Raised when the health of a release cannot be determined."""
    pass


class ReleaseQueryError(HelmLockError):
    """Raised when helm fails to report a release status."""
    pass


class RollbackError(HelmLockError):
    """Raised when a helm rollback fails."""
    pass


class RecoveryError(HelmLockError):
    """Raised when a degraded release could not be recovered."""
    pass


class OperationError(HelmLockError):
    """Raised when the guarded operation exits unsuccessfully."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class SpawnError(OperationError):
    """Raised when the guarded operation could not be started at all."""
    pass


class Interrupted(HelmLockError):
    """Raised when the run was stopped by a termination signal."""

    def __init__(self, message: str, signum: int):
        super().__init__(message)
        self.signum = signum
