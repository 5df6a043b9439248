import asyncio
import stat
import textwrap

import pytest

from helm_lock.exceptions import ReleaseQueryError, RollbackError
from helm_lock.helm import HelmClient


def _fake_helm(tmp_path, body):
    """Write an executable stand-in for the helm binary that logs its arguments."""
    log = tmp_path / "args.log"
    script = tmp_path / "helm"
    script.write_text("#!/bin/sh\n" + f'echo "$@" >> "{log}"\n' + textwrap.dedent(body))
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script), log


def test_status_reads_info_status(tmp_path):
    binary, log = _fake_helm(tmp_path, """\
        echo '{"name": "web", "info": {"status": "pending-upgrade"}}'
    """)
    client = HelmClient(binary=binary, namespace="prod", kube_context="ci")

    assert asyncio.run(client.status("web")) == "pending-upgrade"
    assert log.read_text().split() == [
        "status", "web", "--output", "json", "--namespace", "prod", "--kube-context", "ci",
    ]


def test_status_not_found_is_none(tmp_path):
    binary, _ = _fake_helm(tmp_path, """\
        echo 'Error: release: not found' >&2
        exit 1
    """)
    assert asyncio.run(HelmClient(binary=binary).status("web")) is None


def test_status_other_failures_raise(tmp_path):
    binary, _ = _fake_helm(tmp_path, """\
        echo 'Error: Kubernetes cluster unreachable' >&2
        exit 1
    """)
    with pytest.raises(ReleaseQueryError, match="unreachable"):
        asyncio.run(HelmClient(binary=binary).status("web"))


def test_status_garbage_output_raises(tmp_path):
    binary, _ = _fake_helm(tmp_path, "echo 'not json'\n")
    with pytest.raises(ReleaseQueryError):
        asyncio.run(HelmClient(binary=binary).status("web"))


def test_missing_binary_raises(tmp_path):
    with pytest.raises(ReleaseQueryError):
        asyncio.run(HelmClient(binary=str(tmp_path / "nope")).status("web"))


def test_rollback_targets_previous_revision(tmp_path):
    binary, log = _fake_helm(tmp_path, "echo 'Rollback was a success!'\n")
    asyncio.run(HelmClient(binary=binary, namespace="prod").rollback("web", timeout=300))

    assert log.read_text().split() == [
        "rollback", "web", "0", "--wait", "--timeout", "300s", "--namespace", "prod",
    ]


def test_rollback_failure_raises(tmp_path):
    binary, _ = _fake_helm(tmp_path, """\
        echo 'Error: release has no 0 version' >&2
        exit 1
    """)
    with pytest.raises(RollbackError, match="no 0 version"):
        asyncio.run(HelmClient(binary=binary).rollback("web"))
