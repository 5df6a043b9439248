"""Turns a ``helm lock ...`` command line into an OperationRequest."""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .exceptions import ValidationError
from .models import OperationRequest

# helm flags that never take a separate value
BOOLEAN_FLAGS = frozenset([
    "-i", "--install", "--atomic", "--wait", "--wait-for-jobs", "--debug",
    "--force", "--reuse-values", "--reset-values", "--reset-then-reuse-values",
    "--create-namespace", "--devel", "--cleanup-on-fail", "--no-hooks",
    "--skip-crds", "--dependency-update", "--keep-history", "--verify",
    "--render-subchart-notes", "--disable-openapi-validation", "--replace",
    "--insecure-skip-tls-verify", "--generate-name", "--take-ownership",
    "--rollback-on-failure", "--recreate-pods", "-A", "--all-namespaces",
])


def split_tokens(tokens: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Separate positional arguments from flag tokens, keeping their order.

    A flag without ``=`` swallows the following token as its value unless
    that token is itself a flag or the flag is a known boolean.
    """
    positionals: List[str] = []
    flags: List[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token.startswith("-") and token != "-":
            flags.append(token)
            takes_value = "=" not in token and token not in BOOLEAN_FLAGS
            if takes_value and i + 1 < len(tokens) and not tokens[i + 1].startswith("-"):
                flags.append(tokens[i + 1])
                i += 1
        else:
            positionals.append(token)
        i += 1
    return positionals, flags


def flag_value(flags: Sequence[str], *names: str) -> Optional[str]:
    """Return the value of the last occurrence of any of ``names`` in ``flags``."""
    value = None
    for i, token in enumerate(flags):
        name, eq, inline = token.partition("=")
        if name not in names:
            continue
        if eq:
            value = inline
        elif i + 1 < len(flags) and not flags[i + 1].startswith("-"):
            value = flags[i + 1]
    return value


def has_flag(flags: Sequence[str], *names: str) -> bool:
    for token in flags:
        name, eq, inline = token.partition("=")
        if name in names:
            return not eq or inline.lower() not in ("false", "0")
    return False


def release_name_from(args: Sequence[str]) -> Optional[str]:
    """Pick the release name out of the arguments that follow the helm command.

    ``upgrade NAME CHART``, ``secrets upgrade NAME CHART`` and
    ``rollback NAME REVISION`` all carry it second to last; ``uninstall NAME``
    carries it alone.
    """
    if not args:
        return None
    if len(args) >= 2:
        return args[-2]
    return args[0]


@dataclass
class Invocation:
    request: OperationRequest
    namespace: Optional[str] = None
    kube_context: Optional[str] = None
    kubeconfig: Optional[str] = None
    debug: bool = False


def parse_invocation(tokens: Sequence[str], release: str = None) -> Invocation:
    """Build the guarded request from everything the lock options did not consume."""
    positionals, flags = split_tokens(tokens)

    # running through the plugin itself, as in `helm lock lock upgrade ...`
    if positionals and positionals[0] == "lock":
        positionals = positionals[1:]

    if len(positionals) < 2:
        raise ValidationError("expected a helm command followed by its arguments")

    command, args = positionals[0], positionals[1:]
    request = OperationRequest(
        command=command,
        resource_name=release or release_name_from(args) or "",
        args=tuple(args),
        flags=tuple(flags),
    )
    return Invocation(
        request=request,
        namespace=flag_value(flags, "-n", "--namespace"),
        kube_context=flag_value(flags, "--kube-context"),
        kubeconfig=flag_value(flags, "--kubeconfig"),
        debug=has_flag(flags, "--debug"),
    )
