"""Host firewall adapters."""

from __future__ import annotations

import platform

from netwarden.firewall.base import FirewallCommandError, FirewallController


def default_firewall(timeout: float = 5.0) -> FirewallController:
    """Pick the firewall adapter for the running platform."""
    system = platform.system()
    if system == "Windows":
        from netwarden.firewall.netsh import NetshFirewall

        return NetshFirewall(timeout=timeout)
    if system == "Linux":
        from netwarden.firewall.iptables import IptablesFirewall

        return IptablesFirewall(timeout=timeout)
    if system == "Darwin":
        from netwarden.firewall.pf import PfFirewall

        return PfFirewall(timeout=timeout)
    raise FirewallCommandError(f"Blocking not supported on {system}")
