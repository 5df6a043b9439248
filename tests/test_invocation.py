import pytest

from helm_lock.exceptions import ValidationError
from helm_lock.invocation import flag_value, has_flag, parse_invocation, release_name_from, split_tokens
from helm_lock.models import lock_name_for


def test_split_tokens_pairs_flag_values():
    positionals, flags = split_tokens(
        ["upgrade", "web", "./chart", "-n", "prod", "--set=a=b", "--values", "v.yaml", "--atomic", "--wait"]
    )
    assert positionals == ["upgrade", "web", "./chart"]
    assert flags == ["-n", "prod", "--set=a=b", "--values", "v.yaml", "--atomic", "--wait"]


def test_boolean_flags_do_not_swallow_positionals():
    positionals, flags = split_tokens(["upgrade", "--install", "web", "./chart"])
    assert positionals == ["upgrade", "web", "./chart"]
    assert flags == ["--install"]


@pytest.mark.parametrize(
    "args, expected",
    [
        (["web", "./chart"], "web"),
        (["upgrade", "web", "./chart"], "web"),
        (["web", "3"], "web"),
        (["web"], "web"),
        ([], None),
    ],
)
def test_release_name_from(args, expected):
    assert release_name_from(args) == expected


def test_parse_invocation_builds_request():
    inv = parse_invocation(["secrets", "upgrade", "web", "./chart", "--namespace=prod", "--debug"])

    assert inv.request.command == "secrets"
    assert inv.request.args == ("upgrade", "web", "./chart")
    assert inv.request.flags == ("--namespace=prod", "--debug")
    assert inv.request.resource_name == "web"
    assert inv.request.argv() == ["secrets", "upgrade", "web", "./chart", "--namespace=prod", "--debug"]
    assert inv.namespace == "prod"
    assert inv.debug


def test_parse_invocation_skips_self_invocation():
    inv = parse_invocation(["lock", "upgrade", "web", "./chart"])
    assert inv.request.command == "upgrade"
    assert inv.request.resource_name == "web"


def test_explicit_release_wins():
    inv = parse_invocation(["upgrade", "web", "./chart"], release="other")
    assert inv.request.resource_name == "other"


def test_needs_command_and_arguments():
    with pytest.raises(ValidationError):
        parse_invocation(["upgrade", "--wait"])


def test_flag_helpers():
    flags = ["-n", "prod", "--kube-context=ci", "--debug=false"]
    assert flag_value(flags, "-n", "--namespace") == "prod"
    assert flag_value(flags, "--kube-context") == "ci"
    assert flag_value(flags, "--kubeconfig") is None
    assert not has_flag(flags, "--debug")
    assert has_flag(["--debug"], "--debug")


def test_lock_names_follow_release_names():
    assert lock_name_for("web") == "helm-lock-web"
    assert lock_name_for("web") == lock_name_for("web")
    assert lock_name_for("web") != lock_name_for("web-2")
