"""Enforcement authority — installs and removes per-IP firewall blocks.

Every firewall change is mirrored in the rule ledger. State per IP::

    unblocked -> blocking (in flight) -> blocked -> unblocked

``block`` and ``unblock`` for the same IP are serialised by a per-IP lock.
The in-flight guard makes overlapping ``block`` calls for an IP return
immediately instead of queueing.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeVar

import aiosqlite

from netwarden.engine.models import BlockRule, UnblockReport
from netwarden.firewall.base import (
    FirewallCommandError,
    FirewallController,
    rule_name_for,
)
from netwarden.storage.repos import RuleRepo

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Enforcer:
    """Owns the firewall controller and the write side of the rule ledger."""

    def __init__(
        self,
        firewall: FirewallController,
        rules: RuleRepo,
        command_timeout: float = 5.0,
        ledger_retries: int = 2,
    ) -> None:
        self._firewall = firewall
        self._rules = rules
        self._command_timeout = command_timeout
        self._ledger_retries = ledger_retries
        self._inflight: set[str] = set()
        self._inflight_lock = threading.Lock()
        self._ip_locks: dict[str, asyncio.Lock] = {}
        self._ip_lock_users: dict[str, int] = {}

    def is_inflight(self, ip: str) -> bool:
        with self._inflight_lock:
            return ip in self._inflight

    async def block(
        self,
        ip: str,
        block_string: str,
        connection_detail: dict[str, Any] | None = None,
    ) -> BlockRule | None:
        """Block ``ip`` unless it is already blocked or being blocked.

        Returns the new rule, or None when nothing was installed. Firewall
        failures are logged and leave no ledger entry.
        """
        rule_name = rule_name_for(ip)
        with self._inflight_lock:
            if ip in self._inflight:
                logger.debug("Block of %s already in flight", ip)
                return None
            self._inflight.add(ip)

        try:
            async with self._ip_lock(ip):
                if await self._call(self._firewall.rule_exists, rule_name):
                    logger.debug("Rule %s already installed", rule_name)
                    return None

                await self._call(self._firewall.add_block_rule, rule_name, ip)
                rule = BlockRule(
                    ip=ip,
                    rule_name=rule_name,
                    block_string=block_string,
                    connection_detail=connection_detail or {},
                )
                logger.warning("BLOCKED %s, matched %r", ip, block_string)
                await self._record(rule)
                return rule
        except FirewallCommandError as exc:
            logger.error("Failed to block %s: %s", ip, exc)
            return None
        finally:
            with self._inflight_lock:
                self._inflight.discard(ip)

    async def unblock(self, ip: str) -> bool:
        """Remove the block for ``ip``.

        Returns True if a firewall rule was deleted, False if none existed.
        Raises FirewallCommandError if the delete fails; the ledger entry is
        kept in that case.
        """
        rule_name = rule_name_for(ip)
        async with self._ip_lock(ip):
            if not await self._call(self._firewall.rule_exists, rule_name):
                if await self._forget(rule_name):
                    logger.warning(
                        "Pruned ledger entry %s with no firewall rule", rule_name
                    )
                return False

            await self._call(self._firewall.delete_rule, rule_name)
            logger.warning("UNBLOCKED %s", ip)
            await self._forget(rule_name)
            return True

    async def unblock_by_criterion(self, block_string: str) -> UnblockReport:
        """Unblock every IP whose rule was triggered by ``block_string``.

        IPs are handled one at a time; a failure is recorded and the rest
        are still attempted.
        """
        report = UnblockReport()
        for rule in await self._rules.list_by_block_string(block_string):
            try:
                removed = await self.unblock(rule.ip)
            except FirewallCommandError as exc:
                logger.error("Failed to unblock %s: %s", rule.ip, exc)
                report.failed[rule.ip] = str(exc)
                continue
            if removed:
                report.unblocked.append(rule.ip)
            else:
                report.skipped.append(rule.ip)
        return report

    @contextlib.asynccontextmanager
    async def _ip_lock(self, ip: str) -> AsyncIterator[None]:
        """Hold the lock for ``ip``; it is discarded once nobody holds or awaits it."""
        lock = self._ip_locks.get(ip)
        if lock is None:
            lock = self._ip_locks[ip] = asyncio.Lock()
        self._ip_lock_users[ip] = self._ip_lock_users.get(ip, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._ip_lock_users[ip] - 1
            if remaining:
                self._ip_lock_users[ip] = remaining
            else:
                del self._ip_lock_users[ip]
                del self._ip_locks[ip]

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking firewall call off the event loop with a deadline."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args),
                timeout=self._command_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FirewallCommandError(
                f"Firewall command timed out after {self._command_timeout}s"
            ) from exc

    async def _record(self, rule: BlockRule) -> None:
        for attempt in range(self._ledger_retries + 1):
            try:
                await self._rules.add(rule)
                return
            except aiosqlite.Error as exc:
                logger.warning(
                    "Ledger write for %s failed (attempt %d): %s",
                    rule.rule_name,
                    attempt + 1,
                    exc,
                )
        logger.error(
            "Rule %s is installed but missing from the ledger", rule.rule_name
        )

    async def _forget(self, rule_name: str) -> int:
        for attempt in range(self._ledger_retries + 1):
            try:
                return await self._rules.remove(rule_name)
            except aiosqlite.Error as exc:
                logger.warning(
                    "Ledger delete for %s failed (attempt %d): %s",
                    rule_name,
                    attempt + 1,
                    exc,
                )
        logger.error("Rule %s was removed but is still in the ledger", rule_name)
        return 0
