"""Scan loop — poll connections, identify, resolve, decide, enforce."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import time
from collections.abc import Callable

import aiosqlite

from netwarden.capture.base import CaptureError, ConnectionSource
from netwarden.capture.process_cache import ProcessNameCache
from netwarden.cloud_ranges import CloudRangeError
from netwarden.decision import should_block
from netwarden.engine.enforcer import Enforcer
from netwarden.engine.models import BlockRule, Connection, ResolvedConnection
from netwarden.resolve import RemoteResolver
from netwarden.storage.repos import CriteriaRepo

logger = logging.getLogger(__name__)

EXCLUDED_ADDRESSES = frozenset({"0.0.0.0", "127.0.0.1", "::", "::1"})
_LINK_LOCAL_V6 = ipaddress.ip_network("fe80::/10")


def is_excluded_address(address: str) -> bool:
    """Loopback, unspecified and IPv6 link-local addresses are never blocked.

    IPv4-mapped forms (``::ffff:127.0.0.1``) of the IPv4 entries count too.
    """
    if not address or address in EXCLUDED_ADDRESSES:
        return True
    try:
        addr = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return address.lower().startswith("fe80")
    if addr.version != 6:
        return False
    if addr.ipv4_mapped is not None:
        return str(addr.ipv4_mapped) in EXCLUDED_ADDRESSES
    return addr in _LINK_LOCAL_V6


class ScanLoop:
    """Runs the enforcement pipeline on a fixed interval.

    Each tick lists TCP connections, keeps those owned by a process whose
    name contains ``target_process`` (case-insensitive), and runs one
    pipeline per remote IP, at most ``max_workers`` at a time. A tick ends
    when all of its pipelines have finished.
    """

    def __init__(
        self,
        connections: ConnectionSource,
        process_cache: ProcessNameCache,
        resolver: RemoteResolver,
        criteria: CriteriaRepo,
        enforcer: Enforcer,
        target_process: str = "cursor",
        poll_interval: float = 2.0,
        max_workers: int = 16,
        on_block: Callable[[BlockRule], None] | None = None,
    ) -> None:
        self._connections = connections
        self._process_cache = process_cache
        self._resolver = resolver
        self._criteria = criteria
        self._enforcer = enforcer
        self._target = target_process.lower()
        self._poll_interval = poll_interval
        self._max_workers = max_workers
        self._on_block = on_block
        self._stop_event = asyncio.Event()
        self._ticks = 0

    @property
    def ticks(self) -> int:
        return self._ticks

    async def run(self) -> None:
        """Tick until stop() is called."""
        self._stop_event.clear()
        logger.info(
            "Scan loop started (target=%r, interval=%.1fs)",
            self._target,
            self._poll_interval,
        )

        while not self._stop_event.is_set():
            started = time.monotonic()
            await self.tick()
            remaining = max(0.0, self._poll_interval - (time.monotonic() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

        logger.info("Scan loop stopped after %d ticks", self._ticks)

    def stop(self) -> None:
        """Signal the loop to stop after the current tick."""
        self._stop_event.set()

    async def tick(self) -> list[BlockRule]:
        """Run one scan. Returns the rules installed during this tick."""
        self._ticks += 1
        try:
            connections = await asyncio.to_thread(self._connections.list_tcp)
        except CaptureError as exc:
            logger.error("Connection scan failed: %s", exc)
            return []

        self._process_cache.prune(conn.pid for conn in connections)

        try:
            criteria = await self._criteria.list_all()
        except aiosqlite.Error as exc:
            logger.error("Cannot read blocking criteria: %s", exc)
            return []

        candidates = self._candidates(connections)
        if not candidates:
            return []

        semaphore = asyncio.Semaphore(self._max_workers)

        async def worker(conn: Connection) -> BlockRule | None:
            async with semaphore:
                return await self.process(conn, criteria)

        results = await asyncio.gather(
            *(worker(conn) for conn in candidates),
            return_exceptions=True,
        )

        installed: list[BlockRule] = []
        for conn, result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Pipeline for %s (PID %d) failed: %r",
                    conn.remote_ip,
                    conn.pid,
                    result,
                )
            elif result is not None:
                installed.append(result)
        return installed

    async def process(
        self, conn: Connection, criteria: list[str]
    ) -> BlockRule | None:
        """Identity → resolve → decide → enforce for a single connection."""
        if conn.pid == 0 or is_excluded_address(conn.remote_ip):
            return None

        name = await self._process_cache.resolve(conn.pid)
        if not name or self._target not in name.lower():
            return None

        try:
            label = await self._resolver.resolve(conn.remote_ip)
        except CloudRangeError as exc:
            logger.error("Skipping %s: %s", conn.remote_ip, exc)
            return None

        resolved = ResolvedConnection(connection=conn, process_name=name, label=label)
        matched = should_block(resolved.label, criteria)
        if matched is None:
            logger.debug("%s → %s: no criterion matched", name, label)
            return None

        rule = await self._enforcer.block(resolved.ip, matched, resolved.to_detail())
        if rule is not None and self._on_block:
            self._on_block(rule)
        return rule

    @staticmethod
    def _candidates(connections: list[Connection]) -> list[Connection]:
        """Drop PID 0 and excluded addresses, one connection per (PID, IP)."""
        seen: set[tuple[int, str]] = set()
        out: list[Connection] = []
        for conn in connections:
            if not conn.pid or is_excluded_address(conn.remote_ip):
                continue
            key = (conn.pid, conn.remote_ip)
            if key in seen:
                continue
            seen.add(key)
            out.append(conn)
        return out
