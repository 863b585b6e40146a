"""Cloud provider IP range index.

Reads a provider's published prefix list (AWS ``ip-ranges.json`` layout)
and answers containment queries. The file is re-read on every query so an
updated dataset takes effect without a restart.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

_Network = ipaddress.IPv4Network | ipaddress.IPv6Network


class CloudRangeError(Exception):
    """The range dataset is missing, unreadable or malformed."""


def load_prefixes(path: str | Path) -> list[str]:
    """Return a flat list of CIDR strings from the dataset at ``path``.

    Expects ``{"prefixes": [{"ip_prefix": ...}], "ipv6_prefixes":
    [{"ipv6_prefix": ...}]}``; ``ipv6_prefixes`` is optional.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CloudRangeError(f"Cannot read IP range dataset {path}: {exc}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CloudRangeError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("prefixes"), list):
        raise CloudRangeError(f"{path} has no 'prefixes' list")

    prefixes = _collect(data["prefixes"], "ip_prefix", path)
    if "ipv6_prefixes" in data:
        if not isinstance(data["ipv6_prefixes"], list):
            raise CloudRangeError(f"{path}: 'ipv6_prefixes' must be a list")
        prefixes.extend(_collect(data["ipv6_prefixes"], "ipv6_prefix", path))
    return prefixes


def _collect(entries: list, key: str, path: Path) -> list[str]:
    out: list[str] = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get(key), str):
            raise CloudRangeError(f"{path}: entry without '{key}': {entry!r}")
        out.append(entry[key])
    return out


def build_networks(prefixes: list[str]) -> list[_Network]:
    networks: list[_Network] = []
    for prefix in prefixes:
        try:
            networks.append(ipaddress.ip_network(prefix, strict=False))
        except ValueError as exc:
            raise CloudRangeError(f"Invalid CIDR {prefix!r}: {exc}") from exc
    return networks


class CloudRangeIndex:
    """Containment test against one provider's published address ranges."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def contains(self, ip: str) -> bool:
        """Whether ``ip`` falls inside any published prefix.

        Raises CloudRangeError if the dataset cannot be used.
        """
        networks = build_networks(load_prefixes(self.path))
        try:
            addr = ipaddress.ip_address(ip)
        except ValueError:
            logger.debug("Not an IP address, skipping range check: %r", ip)
            return False
        return any(addr.version == net.version and addr in net for net in networks)
