"""Firewall controller protocol and rule identifiers."""

from __future__ import annotations

import logging
import subprocess
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

RULE_PREFIX = "Block_IP_"


class FirewallCommandError(Exception):
    """A firewall command could not be run, timed out, or failed."""


def rule_name_for(ip: str) -> str:
    """Deterministic rule identifier for an IP."""
    return f"{RULE_PREFIX}{ip}"


def ip_from_rule_name(rule_name: str) -> str | None:
    """Inverse of rule_name_for(); None for names we did not create."""
    if not rule_name.startswith(RULE_PREFIX):
        return None
    return rule_name[len(RULE_PREFIX) :] or None


@runtime_checkable
class FirewallController(Protocol):
    """Per-IP outbound block rules in the host firewall."""

    def rule_exists(self, rule_name: str) -> bool:
        """Whether a rule with this identifier is installed."""
        ...

    def add_block_rule(self, rule_name: str, ip: str) -> None:
        """Install an outbound block for ``ip``. Raises FirewallCommandError."""
        ...

    def delete_rule(self, rule_name: str) -> None:
        """Remove the rule. Raises FirewallCommandError."""
        ...


def run_command(
    args: list[str],
    timeout: float,
    input: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a firewall tool; missing binaries and timeouts become FirewallCommandError.

    The exit status is left for the caller to interpret.
    """
    logger.debug("Running %s", " ".join(args))
    try:
        return subprocess.run(
            args,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise FirewallCommandError(f"{args[0]} timed out after {timeout}s") from exc
    except OSError as exc:
        raise FirewallCommandError(f"Cannot run {args[0]}: {exc}") from exc


def check_result(result: subprocess.CompletedProcess[str], what: str) -> None:
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise FirewallCommandError(
            f"{what} failed (exit {result.returncode}): {detail}"
        )
