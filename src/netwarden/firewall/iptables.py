"""Linux adapter — OUTPUT DROP rules tagged with the rule name."""

from __future__ import annotations

import ipaddress

from netwarden.firewall.base import (
    FirewallCommandError,
    check_result,
    ip_from_rule_name,
    run_command,
)


class IptablesFirewall:
    """Uses iptables for IPv4 and ip6tables for IPv6 destinations.

    The rule name is stored as an ``-m comment`` tag, so the full rule can
    be rebuilt from the name alone for ``-C`` and ``-D``.
    """

    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout

    def rule_exists(self, rule_name: str) -> bool:
        result = run_command(
            self._command("-C", rule_name, self._ip_for(rule_name)),
            timeout=self._timeout,
        )
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        check_result(result, f"iptables check {rule_name}")
        return False

    def add_block_rule(self, rule_name: str, ip: str) -> None:
        result = run_command(
            self._command("-A", rule_name, ip),
            timeout=self._timeout,
        )
        check_result(result, f"iptables append {rule_name}")

    def delete_rule(self, rule_name: str) -> None:
        result = run_command(
            self._command("-D", rule_name, self._ip_for(rule_name)),
            timeout=self._timeout,
        )
        check_result(result, f"iptables delete {rule_name}")

    @staticmethod
    def _ip_for(rule_name: str) -> str:
        ip = ip_from_rule_name(rule_name)
        if ip is None:
            raise FirewallCommandError(f"Not a netwarden rule name: {rule_name}")
        return ip

    @staticmethod
    def _command(op: str, rule_name: str, ip: str) -> list[str]:
        try:
            version = ipaddress.ip_address(ip).version
        except ValueError as exc:
            raise FirewallCommandError(f"Invalid IP address: {ip}") from exc
        binary = "ip6tables" if version == 6 else "iptables"
        return [
            binary,
            op,
            "OUTPUT",
            "-d",
            ip,
            "-j",
            "DROP",
            "-m",
            "comment",
            "--comment",
            rule_name,
        ]
