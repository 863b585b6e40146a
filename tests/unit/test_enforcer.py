"""Tests for the enforcement authority."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import aiosqlite

from conftest import FakeFirewall
from netwarden.engine.enforcer import Enforcer
from netwarden.engine.models import BlockRule
from netwarden.firewall.base import rule_name_for
from netwarden.storage.db import get_db
from netwarden.storage.repos import RuleRepo

IP_A = "52.95.110.1"
IP_B = "52.95.110.2"


async def _open(tmp_path: Path, firewall: FakeFirewall, **kwargs):
    db = await get_db(tmp_path / "n.db")
    repo = RuleRepo(db)
    return db, repo, Enforcer(firewall, repo, **kwargs)


class TestBlock:
    def test_block_installs_rule_and_ledger_entry(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                rule = await enforcer.block(IP_A, "aws.amazon.com", {"pid": 1})
                return rule, await repo.list_all()
            finally:
                await db.close()

        rule, ledger = asyncio.run(scenario())
        assert rule is not None
        assert rule.rule_name == "Block_IP_52.95.110.1"
        assert rule.block_string == "aws.amazon.com"
        assert rule.connection_detail == {"pid": 1}
        assert ledger == [rule]
        assert firewall.rules == {"Block_IP_52.95.110.1": IP_A}

    def test_sequential_block_is_idempotent(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                first = await enforcer.block(IP_A, "s3")
                second = await enforcer.block(IP_A, "s3")
                return first, second, await repo.list_all()
            finally:
                await db.close()

        first, second, ledger = asyncio.run(scenario())
        assert first is not None
        assert second is None
        assert len(ledger) == 1
        assert firewall.count("add") == 1

    def test_concurrent_block_is_idempotent(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                results = await asyncio.gather(
                    *(enforcer.block(IP_A, "s3") for _ in range(10))
                )
                return results, await repo.list_all()
            finally:
                await db.close()

        results, ledger = asyncio.run(scenario())
        assert sum(1 for r in results if r is not None) == 1
        assert len(ledger) == 1
        assert firewall.count("add") == 1
        assert list(firewall.rules) == [rule_name_for(IP_A)]

    def test_existing_firewall_rule_is_left_alone(self, tmp_path: Path, firewall: FakeFirewall):
        firewall.rules[rule_name_for(IP_A)] = IP_A

        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                return await enforcer.block(IP_A, "s3"), await repo.list_all()
            finally:
                await db.close()

        rule, ledger = asyncio.run(scenario())
        assert rule is None
        assert ledger == []
        assert firewall.count("add") == 0

    def test_firewall_failure_writes_nothing_and_clears_guard(
        self, tmp_path: Path, firewall: FakeFirewall
    ):
        firewall.fail_add.add(IP_A)

        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                failed = await enforcer.block(IP_A, "s3")
                inflight_after_failure = enforcer.is_inflight(IP_A)
                ledger_after_failure = await repo.list_all()

                firewall.fail_add.clear()
                retried = await enforcer.block(IP_A, "s3")
                return failed, inflight_after_failure, ledger_after_failure, retried
            finally:
                await db.close()

        failed, inflight, ledger, retried = asyncio.run(scenario())
        assert failed is None
        assert inflight is False
        assert ledger == []
        assert retried is not None
        assert firewall.count("add") == 2

    def test_timeout_clears_guard(self, tmp_path: Path):
        class SlowFirewall(FakeFirewall):
            def add_block_rule(self, rule_name: str, ip: str) -> None:
                time.sleep(0.3)
                super().add_block_rule(rule_name, ip)

        firewall = SlowFirewall()

        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall, command_timeout=0.05)
            try:
                rule = await enforcer.block(IP_A, "s3")
                return rule, enforcer.is_inflight(IP_A), await repo.list_all()
            finally:
                await db.close()

        rule, inflight, ledger = asyncio.run(scenario())
        assert rule is None
        assert inflight is False
        assert ledger == []

    def test_ledger_write_is_retried(self, firewall: FakeFirewall):
        repo = MagicMock()
        repo.add = AsyncMock(side_effect=[aiosqlite.OperationalError("locked"), None])
        enforcer = Enforcer(firewall, repo, ledger_retries=2)

        rule = asyncio.run(enforcer.block(IP_A, "s3"))
        assert rule is not None
        assert repo.add.await_count == 2

    def test_ledger_failure_does_not_raise(self, firewall: FakeFirewall):
        repo = MagicMock()
        repo.add = AsyncMock(side_effect=aiosqlite.OperationalError("disk I/O error"))
        enforcer = Enforcer(firewall, repo, ledger_retries=1)

        rule = asyncio.run(enforcer.block(IP_A, "s3"))
        # The firewall rule is real even though the ledger could not record it
        assert rule is not None
        assert repo.add.await_count == 2
        assert rule_name_for(IP_A) in firewall.rules
        assert enforcer.is_inflight(IP_A) is False


class TestUnblock:
    def test_unblock_without_rule_is_noop(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                return await enforcer.unblock(IP_A)
            finally:
                await db.close()

        assert asyncio.run(scenario()) is False
        assert firewall.count("delete") == 0

    def test_round_trip_restores_state(self, tmp_path: Path, firewall: FakeFirewall):
        firewall.rules["Block_IP_9.9.9.9"] = "9.9.9.9"

        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                before = (dict(firewall.rules), await repo.list_all())
                await enforcer.block(IP_A, "s3", {"pid": 1})
                removed = await enforcer.unblock(IP_A)
                after = (dict(firewall.rules), await repo.list_all())
                return removed, before, after
            finally:
                await db.close()

        removed, before, after = asyncio.run(scenario())
        assert removed is True
        assert before == after

    def test_delete_failure_keeps_ledger_entry(self, tmp_path: Path, firewall: FakeFirewall):
        firewall.fail_delete.add(IP_A)

        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                await enforcer.block(IP_A, "s3")
                try:
                    await enforcer.unblock(IP_A)
                except Exception as exc:  # noqa: BLE001
                    error = exc
                else:
                    error = None
                return error, await repo.list_all()
            finally:
                await db.close()

        error, ledger = asyncio.run(scenario())
        assert error is not None
        assert [r.ip for r in ledger] == [IP_A]
        assert rule_name_for(IP_A) in firewall.rules

    def test_stale_ledger_entry_is_pruned(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                await repo.add(
                    BlockRule(ip=IP_A, rule_name=rule_name_for(IP_A), block_string="s3")
                )
                removed = await enforcer.unblock(IP_A)
                return removed, await repo.list_all()
            finally:
                await db.close()

        removed, ledger = asyncio.run(scenario())
        assert removed is False
        assert ledger == []
        assert firewall.count("delete") == 0

    def test_block_and_unblock_serialise_per_ip(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                block_task = asyncio.create_task(enforcer.block(IP_A, "s3"))
                await asyncio.sleep(0)
                removed = await enforcer.unblock(IP_A)
                await block_task
                return removed, await repo.list_all()
            finally:
                await db.close()

        removed, ledger = asyncio.run(scenario())
        # The block started first, so the unblock sees and removes its rule
        assert removed is True
        assert ledger == []
        assert firewall.rules == {}


class TestUnblockByCriterion:
    def test_cascade_continues_past_failures(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                await enforcer.block(IP_A, "s3")
                await enforcer.block(IP_B, "s3")
                await enforcer.block("3.5.1.1", "aws.amazon.com")
                firewall.fail_delete.add(IP_A)

                report = await enforcer.unblock_by_criterion("s3")
                return report, await repo.list_all()
            finally:
                await db.close()

        report, ledger = asyncio.run(scenario())
        assert report.unblocked == [IP_B]
        assert list(report.failed) == [IP_A]
        assert report.ok is False
        assert rule_name_for(IP_B) not in firewall.rules
        assert rule_name_for("3.5.1.1") in firewall.rules
        assert sorted(r.ip for r in ledger) == sorted([IP_A, "3.5.1.1"])

    def test_cascade_removes_everything_on_success(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                await enforcer.block(IP_A, "s3")
                await enforcer.block(IP_B, "s3")
                report = await enforcer.unblock_by_criterion("s3")
                return report, await repo.list_by_block_string("s3")
            finally:
                await db.close()

        report, remaining = asyncio.run(scenario())
        assert report.ok is True
        assert sorted(report.unblocked) == sorted([IP_A, IP_B])
        assert remaining == []
        assert firewall.rules == {}

    def test_unknown_criterion(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                return await enforcer.unblock_by_criterion("nothing")
            finally:
                await db.close()

        report = asyncio.run(scenario())
        assert report.unblocked == [] and report.failed == {} and report.skipped == []


class TestIpLocks:
    def test_locks_are_released_after_use(self, tmp_path: Path, firewall: FakeFirewall):
        ips = [f"52.95.0.{n}" for n in range(1, 51)]

        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                await asyncio.gather(*(enforcer.block(ip, "s3") for ip in ips))
                await asyncio.gather(*(enforcer.unblock(ip) for ip in ips))
                return dict(enforcer._ip_locks)
            finally:
                await db.close()

        assert asyncio.run(scenario()) == {}
        assert firewall.rules == {}

    def test_waiting_caller_keeps_lock_alive(self, tmp_path: Path, firewall: FakeFirewall):
        async def scenario():
            db, repo, enforcer = await _open(tmp_path, firewall)
            try:
                block_task = asyncio.create_task(enforcer.block(IP_A, "s3"))
                await asyncio.sleep(0)
                unblock_task = asyncio.create_task(enforcer.unblock(IP_A))
                await asyncio.sleep(0)
                held = IP_A in enforcer._ip_locks
                await asyncio.gather(block_task, unblock_task)
                return held, dict(enforcer._ip_locks), unblock_task.result()
            finally:
                await db.close()

        held, remaining, removed = asyncio.run(scenario())
        assert held is True
        assert remaining == {}
        assert removed is True
