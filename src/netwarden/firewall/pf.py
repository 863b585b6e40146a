"""macOS pf adapter — one anchor per rule under ``netwarden/``.

pf.conf must reference the anchors, e.g. ``anchor "netwarden/*"``.
"""

from __future__ import annotations

from netwarden.firewall.base import check_result, run_command

ANCHOR_ROOT = "netwarden"


class PfFirewall:
    """Per-IP block rules in dedicated pf anchors."""

    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout

    def rule_exists(self, rule_name: str) -> bool:
        result = run_command(
            ["pfctl", "-a", _anchor(rule_name), "-s", "rules"],
            timeout=self._timeout,
        )
        check_result(result, f"pfctl show {rule_name}")
        return bool(result.stdout.strip())

    def add_block_rule(self, rule_name: str, ip: str) -> None:
        rule = f"block drop out quick to {ip}\n"
        result = run_command(
            ["pfctl", "-a", _anchor(rule_name), "-f", "-"],
            timeout=self._timeout,
            input=rule,
        )
        check_result(result, f"pfctl load {rule_name}")

    def delete_rule(self, rule_name: str) -> None:
        result = run_command(
            ["pfctl", "-a", _anchor(rule_name), "-F", "rules"],
            timeout=self._timeout,
        )
        check_result(result, f"pfctl flush {rule_name}")


def _anchor(rule_name: str) -> str:
    return f"{ANCHOR_ROOT}/{rule_name}"
