"""psutil-backed connection enumeration and process inspection."""

from __future__ import annotations

import logging
import socket

import psutil

from netwarden.capture.base import CaptureError, InspectionError
from netwarden.engine.models import Connection

logger = logging.getLogger(__name__)

_PROTO_MAP = {
    socket.SOCK_STREAM: "tcp",
    socket.SOCK_DGRAM: "udp",
}


class PsutilConnections:
    """Enumerates system-wide TCP connections with psutil.net_connections().

    Listening sockets and other connections without a remote endpoint are
    dropped; everything else is returned regardless of state.
    """

    def list_tcp(self) -> list[Connection]:
        try:
            conns = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied as exc:
            raise CaptureError(
                "Access denied listing connections (run elevated)"
            ) from exc
        except OSError as exc:
            raise CaptureError(f"Failed to list connections: {exc}") from exc

        connections: list[Connection] = []
        for conn in conns:
            if not conn.raddr:
                continue
            connections.append(
                Connection(
                    pid=conn.pid or 0,
                    remote_ip=conn.raddr.ip,
                    remote_port=conn.raddr.port,
                    local_ip=conn.laddr.ip if conn.laddr else "",
                    local_port=conn.laddr.port if conn.laddr else 0,
                    protocol=_PROTO_MAP.get(conn.type, "tcp"),
                    status=conn.status,
                )
            )
        return connections


class PsutilInspector:
    """Process names via psutil (Linux, macOS)."""

    def process_name(self, pid: int) -> str | None:
        try:
            return psutil.Process(pid).name()
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return None
        except psutil.AccessDenied as exc:
            raise InspectionError(f"Access denied reading process {pid}") from exc
