"""Runtime configuration for helm-lock."""

import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from .client import DEFAULT_BASE_URL
from .models import LeaseTiming

DEFAULT_LOCK_TIMEOUT = 10 * 60.0

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|ms|m|s)")
_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(text: str) -> float:
    """Parse a Go-style duration such as ``90s``, ``5m`` or ``1h30m`` into seconds.

    A bare number is taken as seconds.
    """
    text = text.strip()
    if not text:
        raise ValueError("empty duration")
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return float(text)

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration {text!r}")
    return total


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class LockConfig:
    """Timing of one orchestration run, in seconds."""
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    lease_duration: float = 15.0
    renew_deadline: float = 10.0
    retry_period: float = 2.0
    recheck_health: bool = True

    @property
    def timing(self) -> LeaseTiming:
        return LeaseTiming(self.lease_duration, self.renew_deadline, self.retry_period)


@dataclass
class Settings:
    """Where to find the lock service and helm, usually from the environment."""
    lock_service_url: str = DEFAULT_BASE_URL
    lock_service_token: Optional[str] = None
    helm_binary: str = "helm"
    namespace: str = "default"
    kube_context: Optional[str] = None
    kubeconfig: Optional[str] = None
    debug: bool = False
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "Settings":
        env = os.environ if environ is None else environ
        timeout = env.get("HELM_LOCK_TIMEOUT")
        return cls(
            lock_service_url=env.get("OCTOSTORE_URL") or DEFAULT_BASE_URL,
            lock_service_token=env.get("OCTOSTORE_TOKEN") or None,
            helm_binary=env.get("HELM_BIN") or "helm",
            namespace=env.get("HELM_NAMESPACE") or "default",
            kube_context=env.get("HELM_KUBECONTEXT") or None,
            kubeconfig=env.get("KUBECONFIG") or None,
            debug=_truthy(env.get("HELM_DEBUG")),
            lock_timeout=parse_duration(timeout) if timeout else DEFAULT_LOCK_TIMEOUT,
        )
