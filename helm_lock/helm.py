"""Thin async wrapper around the helm CLI for release status and rollback."""

import asyncio
import json
import logging
from typing import List, Optional, Tuple

from .exceptions import ReleaseQueryError, RollbackError

logger = logging.getLogger(__name__)

DEFAULT_ROLLBACK_TIMEOUT = 300.0


class HelmClient:
    """Runs helm subcommands with captured output."""

    def __init__(
        self,
        binary: str = "helm",
        namespace: str = None,
        kube_context: str = None,
        kubeconfig: str = None,
        debug: bool = False,
    ):
        self.binary = binary
        self.namespace = namespace
        self.kube_context = kube_context
        self.kubeconfig = kubeconfig
        self.debug = debug

    def _global_flags(self) -> List[str]:
        flags = []
        if self.namespace:
            flags += ["--namespace", self.namespace]
        if self.kube_context:
            flags += ["--kube-context", self.kube_context]
        if self.kubeconfig:
            flags += ["--kubeconfig", self.kubeconfig]
        if self.debug:
            flags.append("--debug")
        return flags

    async def _exec(self, *args: str) -> Tuple[int, str, str]:
        argv = [self.binary, *args, *self._global_flags()]
        logger.debug("Running %s", " ".join(argv))
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        return proc.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")

    async def status(self, name: str) -> Optional[str]:
        """Return the helm status string of ``name``, or None if there is no such release."""
        try:
            code, out, err = await self._exec("status", name, "--output", "json")
        except OSError as e:
            raise ReleaseQueryError(f"cannot run {self.binary}: {e}") from e

        if code != 0:
            if "not found" in err:
                return None
            raise ReleaseQueryError(err.strip() or f"helm status exited with {code}")

        try:
            info = json.loads(out)["info"]
            return info["status"]
        except (ValueError, KeyError, TypeError) as e:
            raise ReleaseQueryError(f"unexpected helm status output: {e}") from e

    async def rollback(self, name: str, timeout: float = DEFAULT_ROLLBACK_TIMEOUT) -> None:
        """Roll ``name`` back to its previous revision and wait for it to settle."""
        # revision 0 means the previous one
        args = ["rollback", name, "0", "--wait", "--timeout", f"{int(timeout)}s"]
        try:
            code, out, err = await self._exec(*args)
        except OSError as e:
            raise RollbackError(f"cannot run {self.binary}: {e}") from e

        if code != 0:
            raise RollbackError(err.strip() or f"helm rollback exited with {code}")
        if out.strip():
            logger.info(out.strip())
