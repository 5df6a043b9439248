"""Release health probing and rollback-based recovery."""

import asyncio
import logging
from typing import Optional, Protocol

from .exceptions import HelmLockError, ProbeError, RecoveryError
from .helm import DEFAULT_ROLLBACK_TIMEOUT
from .models import ResourceStatus

logger = logging.getLogger(__name__)

HEALTHY_STATUS = "deployed"
UNKNOWN_STATUS = "unknown"

# slack on top of helm's own --timeout before we stop waiting on it
RECOVERY_GRACE = 30.0


class ReleaseClient(Protocol):
    async def status(self, name: str) -> Optional[str]: ...

    async def rollback(self, name: str, timeout: float = DEFAULT_ROLLBACK_TIMEOUT) -> None: ...


def classify(status: Optional[str]) -> ResourceStatus:
    """Map a helm release status onto a ResourceStatus."""
    if status is None:
        return ResourceStatus.ABSENT
    if status == HEALTHY_STATUS:
        return ResourceStatus.HEALTHY
    if status == UNKNOWN_STATUS:
        return ResourceStatus.UNKNOWN
    return ResourceStatus.DEGRADED


class ReleaseHealthProbe:
    """Reads the current status of a release. Has no side effects."""

    def __init__(self, client: ReleaseClient):
        self.client = client

    async def probe(self, name: str) -> ResourceStatus:
        try:
            raw = await self.client.status(name)
        except HelmLockError as e:
            raise ProbeError(f"failed to check release status: {e}") from e

        status = classify(raw)
        logger.debug("Release '%s' is %s (%s)", name, status.value, raw)
        return status


class ReleaseRecovery:
    """Rolls a degraded release back to its previous revision.

    Recovery re-probes first, so calling it on a release that is already
    healthy (or gone) does nothing.
    """

    def __init__(
        self,
        client: ReleaseClient,
        probe: ReleaseHealthProbe,
        timeout: float = DEFAULT_ROLLBACK_TIMEOUT,
    ):
        self.client = client
        self.probe = probe
        self.timeout = timeout

    async def recover(self, name: str) -> None:
        try:
            status = await self.probe.probe(name)
        except ProbeError as e:
            raise RecoveryError(str(e)) from e

        if status is not ResourceStatus.DEGRADED:
            logger.info("Release '%s' is %s, nothing to roll back", name, status.value)
            return

        try:
            await asyncio.wait_for(
                self.client.rollback(name, timeout=self.timeout),
                timeout=self.timeout + RECOVERY_GRACE,
            )
        except asyncio.TimeoutError as e:
            raise RecoveryError(f"rollback of '{name}' did not finish within {self.timeout:.0f}s") from e
        except HelmLockError as e:
            raise RecoveryError(f"rollback failed: {e}") from e

        logger.info("Rolled back release '%s'", name)
