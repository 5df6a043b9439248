"""Runs the guarded helm command as a child process."""

import asyncio
import logging
import os
from typing import Mapping, Optional

from .exceptions import OperationError, SpawnError
from .models import OperationRequest

logger = logging.getLogger(__name__)


class OperationRunner:
    """Spawns ``binary`` with the request's arguments.

    The child shares our stdin, stdout and stderr and a copy of our
    environment, so its output streams live to the caller. Cancelling
    ``run`` terminates the child.
    """

    def __init__(
        self,
        binary: str = "helm",
        terminate_grace: float = 10.0,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.binary = binary
        self.terminate_grace = terminate_grace
        self.env = env

    async def run(self, request: OperationRequest) -> None:
        argv = [self.binary, *request.argv()]
        logger.info("Executing: %s", " ".join(argv))

        env = dict(os.environ if self.env is None else self.env)
        try:
            proc = await asyncio.create_subprocess_exec(*argv, env=env)
        except OSError as e:
            raise SpawnError(f"failed to start {self.binary}: {e}") from e

        try:
            code = await proc.wait()
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

        if code != 0:
            raise OperationError(f"{self.binary} {request.command} exited with status {code}", exit_code=code)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        logger.warning("Terminating %s (pid %d)", self.binary, proc.pid)
        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=self.terminate_grace)
        except ProcessLookupError:
            return
        except asyncio.TimeoutError:
            logger.warning("%s ignored SIGTERM, killing it", self.binary)
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()
