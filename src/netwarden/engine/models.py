"""Engine data models — observed connections, resolved connections, block rules."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Connection:
    """A single TCP connection seen during one scan tick."""

    pid: int
    remote_ip: str
    remote_port: int
    local_ip: str = ""
    local_port: int = 0
    protocol: str = "tcp"
    status: str = "NONE"


@dataclass(frozen=True)
class ResolvedConnection:
    """A connection annotated with the label its remote address resolved to.

    The raw address stays on ``connection`` so enforcement always targets
    the IP, never the label.
    """

    connection: Connection
    process_name: str
    label: str

    @property
    def ip(self) -> str:
        return self.connection.remote_ip

    def to_detail(self) -> dict[str, Any]:
        """Snapshot stored with a block rule."""
        conn = self.connection
        return {
            "protocol": conn.protocol,
            "pid": conn.pid,
            "processName": self.process_name,
            "state": conn.status,
            "local": {"address": conn.local_ip, "port": conn.local_port},
            "remote": {
                "address": self.label,
                "port": conn.remote_port,
                "ip": conn.remote_ip,
            },
        }


@dataclass(frozen=True)
class BlockRule:
    """A firewall block currently installed for one IP."""

    ip: str
    rule_name: str
    block_string: str
    connection_detail: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip": self.ip,
            "ruleName": self.rule_name,
            "blockString": self.block_string,
            "connectionDetail": self.connection_detail,
            "timestamp": self.timestamp,
        }


@dataclass
class UnblockReport:
    """Per-IP outcome of a bulk unblock."""

    unblocked: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
