"""Windows Firewall adapter (``netsh advfirewall``)."""

from __future__ import annotations

from netwarden.firewall.base import check_result, run_command

_NO_MATCH = "No rules match"


class NetshFirewall:
    """Named outbound block rules in Windows Defender Firewall."""

    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout

    def rule_exists(self, rule_name: str) -> bool:
        result = run_command(
            ["netsh", "advfirewall", "firewall", "show", "rule", f"name={rule_name}"],
            timeout=self._timeout,
        )
        # netsh exits non-zero when nothing matches, so check the text first
        if _NO_MATCH in result.stdout:
            return False
        check_result(result, f"netsh show rule {rule_name}")
        return True

    def add_block_rule(self, rule_name: str, ip: str) -> None:
        result = run_command(
            [
                "netsh",
                "advfirewall",
                "firewall",
                "add",
                "rule",
                f"name={rule_name}",
                "dir=out",
                f"remoteip={ip}",
                "action=block",
            ],
            timeout=self._timeout,
        )
        check_result(result, f"netsh add rule {rule_name}")

    def delete_rule(self, rule_name: str) -> None:
        result = run_command(
            ["netsh", "advfirewall", "firewall", "delete", "rule", f"name={rule_name}"],
            timeout=self._timeout,
        )
        check_result(result, f"netsh delete rule {rule_name}")
