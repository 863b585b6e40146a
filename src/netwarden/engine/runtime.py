"""Wiring — builds the enforcement engine from a NetwardenConfig."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import aiosqlite

from netwarden.capture import default_inspector
from netwarden.capture.base import ConnectionSource, ProcessInspector
from netwarden.capture.process_cache import ProcessNameCache
from netwarden.capture.psutil_ import PsutilConnections
from netwarden.cloud_ranges import CloudRangeIndex
from netwarden.config import NetwardenConfig
from netwarden.engine.control import ControlSurface
from netwarden.engine.enforcer import Enforcer
from netwarden.engine.models import BlockRule
from netwarden.engine.scanner import ScanLoop
from netwarden.firewall import default_firewall
from netwarden.firewall.base import FirewallController
from netwarden.resolve import RemoteResolver
from netwarden.storage.db import get_db
from netwarden.storage.repos import CriteriaRepo, RuleRepo

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """A fully wired engine instance and the resources it owns."""

    db: aiosqlite.Connection
    rules: RuleRepo
    criteria: CriteriaRepo
    enforcer: Enforcer
    scanner: ScanLoop
    control: ControlSurface

    async def close(self) -> None:
        self.scanner.stop()
        await self.db.close()


async def open_engine(
    config: NetwardenConfig,
    *,
    firewall: FirewallController | None = None,
    inspector: ProcessInspector | None = None,
    connections: ConnectionSource | None = None,
    on_block: Callable[[BlockRule], None] | None = None,
) -> Engine:
    """Open the ledger and assemble the pipeline.

    Adapters default to the ones for the running platform.
    """
    firewall = firewall or default_firewall(timeout=config.command_timeout)
    inspector = inspector or default_inspector(timeout=config.command_timeout)

    db = await get_db(config.db_path, seed_criteria=config.seed_criteria)
    rules = RuleRepo(db)
    criteria = CriteriaRepo(db)

    enforcer = Enforcer(
        firewall,
        rules,
        # Outer deadline; the adapters enforce command_timeout themselves
        command_timeout=config.command_timeout + 1.0,
        ledger_retries=config.ledger_retries,
    )
    process_cache = ProcessNameCache(
        inspector,
        timeout=config.command_timeout + 1.0,
        ttl=config.process_cache_ttl,
    )
    resolver = RemoteResolver(
        CloudRangeIndex(config.ranges_path),
        provider_label=config.provider_label,
        dns_timeout=config.dns_timeout,
    )
    scanner = ScanLoop(
        connections or PsutilConnections(),
        process_cache,
        resolver,
        criteria,
        enforcer,
        target_process=config.target_process,
        poll_interval=config.poll_interval,
        max_workers=config.max_workers,
        on_block=on_block,
    )
    logger.debug("Engine ready (db=%s, ranges=%s)", config.db_path, config.ranges_path)
    return Engine(
        db=db,
        rules=rules,
        criteria=criteria,
        enforcer=enforcer,
        scanner=scanner,
        control=ControlSurface(rules, criteria, enforcer),
    )
