"""Shared test fixtures and fake OS adapters."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from netwarden.capture.base import InspectionError
from netwarden.config import NetwardenConfig
from netwarden.engine.models import Connection
from netwarden.firewall.base import FirewallCommandError, ip_from_rule_name

AWS_RANGES = {
    "syncToken": "1700000000",
    "createDate": "2024-01-01-00-00-00",
    "prefixes": [
        {"ip_prefix": "52.95.0.0/16", "region": "us-east-1", "service": "S3"},
        {"ip_prefix": "3.5.0.0/19", "region": "us-east-2", "service": "AMAZON"},
    ],
    "ipv6_prefixes": [
        {"ipv6_prefix": "2600:1f18::/33", "region": "us-east-1", "service": "EC2"},
    ],
}


class FakeFirewall:
    """In-memory FirewallController. Thread-safe, records every call."""

    def __init__(self) -> None:
        self.rules: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_add: set[str] = set()
        self.fail_delete: set[str] = set()
        self._lock = threading.Lock()

    def rule_exists(self, rule_name: str) -> bool:
        with self._lock:
            self.calls.append(("exists", rule_name))
            return rule_name in self.rules

    def add_block_rule(self, rule_name: str, ip: str) -> None:
        with self._lock:
            self.calls.append(("add", rule_name))
            if ip in self.fail_add:
                raise FirewallCommandError(f"add failed for {ip}")
            self.rules[rule_name] = ip

    def delete_rule(self, rule_name: str) -> None:
        with self._lock:
            self.calls.append(("delete", rule_name))
            if ip_from_rule_name(rule_name) in self.fail_delete:
                raise FirewallCommandError(f"delete failed for {rule_name}")
            self.rules.pop(rule_name, None)

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)


class FakeInspector:
    """ProcessInspector backed by a dict; PIDs in ``errors`` raise."""

    def __init__(self, names: dict[int, str] | None = None) -> None:
        self.names = dict(names or {})
        self.errors: set[int] = set()
        self.calls: list[int] = []

    def process_name(self, pid: int) -> str | None:
        self.calls.append(pid)
        if pid in self.errors:
            raise InspectionError(f"tool failed for {pid}")
        return self.names.get(pid)


class FakeConnections:
    """ConnectionSource returning a fixed list."""

    def __init__(self, connections: list[Connection] | None = None) -> None:
        self.connections = list(connections or [])

    def list_tcp(self) -> list[Connection]:
        return list(self.connections)


def make_conn(
    remote_ip: str = "52.95.110.1",
    pid: int = 4242,
    remote_port: int = 443,
) -> Connection:
    return Connection(
        pid=pid,
        remote_ip=remote_ip,
        remote_port=remote_port,
        local_ip="192.168.1.20",
        local_port=51515,
        status="ESTABLISHED",
    )


@pytest.fixture
def ranges_file(tmp_path: Path) -> Path:
    path = tmp_path / "ip-ranges.json"
    path.write_text(json.dumps(AWS_RANGES), encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path: Path, ranges_file: Path) -> NetwardenConfig:
    return NetwardenConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        ip_ranges_path=ranges_file,
        poll_interval=0.01,
        command_timeout=2.0,
        dns_timeout=1.0,
    )


@pytest.fixture
def firewall() -> FakeFirewall:
    return FakeFirewall()


@pytest.fixture
def inspector() -> FakeInspector:
    return FakeInspector({4242: "Cursor.exe", 5000: "chrome.exe"})


@pytest.fixture
def connections() -> FakeConnections:
    return FakeConnections()
