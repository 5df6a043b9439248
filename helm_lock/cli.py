"""``helm-lock`` command line entry point."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Awaitable, List, Optional, Sequence, TypeVar

from .client import AsyncLockServiceClient
from .config import LockConfig, Settings, parse_duration
from .exceptions import Interrupted, ValidationError
from .health import ReleaseHealthProbe, ReleaseRecovery
from .helm import HelmClient
from .invocation import Invocation, parse_invocation
from .lock import LockHandle
from .models import OperationOutcome
from .orchestrator import Orchestrator
from .runner import OperationRunner

logger = logging.getLogger("helm_lock")

T = TypeVar("T")

DESCRIPTION = """\
Execute Helm commands with distributed locking.

Only one holder per release runs at a time. If the release was left in a
failed or pending state by an earlier run, it is rolled back to its previous
revision before the requested command runs."""

EXAMPLES = """\
examples:
  helm lock secrets upgrade my-release ./my-chart
  helm lock upgrade my-release ./my-chart --lock-timeout 5m"""


def _duration(text: str) -> float:
    try:
        return parse_duration(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helm lock",
        usage="%(prog)s [HELM_COMMAND] [ARGS...] [flags]",
        description=DESCRIPTION,
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument(
        "--lock-timeout",
        type=_duration,
        default=settings.lock_timeout,
        metavar="DURATION",
        help="how long to wait for the lock and the command (default: %(default).0fs)",
    )
    parser.add_argument(
        "--lock-release",
        metavar="NAME",
        help="release to lock, when it cannot be read from the arguments",
    )
    return parser


def configure_logging(debug: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False


async def cancel_on_signal(work: Awaitable[T], signums=(signal.SIGTERM,)) -> T:
    """Await ``work``, cancelling it if one of ``signums`` arrives.

    Cancellation unwinds the orchestrator, so the lock is released and any
    running helm child is terminated before Interrupted is raised.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(work)
    received = []

    def stop(signum: int) -> None:
        logger.warning("Received %s, stopping", signal.Signals(signum).name)
        received.append(signum)
        task.cancel()

    for signum in signums:
        loop.add_signal_handler(signum, stop, signum)
    try:
        return await task
    except asyncio.CancelledError:
        if not received:
            raise
        raise Interrupted(f"interrupted by {signal.Signals(received[0]).name}", received[0])
    finally:
        for signum in signums:
            loop.remove_signal_handler(signum)


async def run_locked(invocation: Invocation, settings: Settings, config: LockConfig) -> OperationOutcome:
    namespace = invocation.namespace or settings.namespace
    helm = HelmClient(
        binary=settings.helm_binary,
        namespace=namespace,
        kube_context=invocation.kube_context or settings.kube_context,
        kubeconfig=invocation.kubeconfig or settings.kubeconfig,
        debug=settings.debug or invocation.debug,
    )
    probe = ReleaseHealthProbe(helm)
    recovery = ReleaseRecovery(helm, probe)
    runner = OperationRunner(binary=settings.helm_binary)

    async with AsyncLockServiceClient(settings.lock_service_url, settings.lock_service_token) as client:
        orchestrator = Orchestrator(
            probe,
            recovery,
            runner,
            lock_factory=lambda: LockHandle(client, namespace),
            config=config,
        )
        logger.debug("Namespace '%s', lock timeout %.0fs", namespace, config.lock_timeout)
        return await cancel_on_signal(orchestrator.run(invocation.request))


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv: List[str] = list(sys.argv[1:] if argv is None else argv)
    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"Error: HELM_LOCK_TIMEOUT: {e}", file=sys.stderr)
        return 2
    parser = build_parser(settings)
    opts, rest = parser.parse_known_args(argv)

    try:
        invocation = parse_invocation(rest, release=opts.lock_release)
    except ValidationError as e:
        print(f"Error: {e}\n", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 2

    configure_logging(settings.debug or invocation.debug)
    config = LockConfig(lock_timeout=opts.lock_timeout)

    try:
        outcome = asyncio.run(run_locked(invocation, settings, config))
    except Interrupted as e:
        logger.error("Error: %s", e)
        return 128 + e.signum
    if not outcome.succeeded:
        logger.error("Error: %s", outcome)
    return outcome.exit_code


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
