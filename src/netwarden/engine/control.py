"""Control surface — the only operations the dashboard and CLI may use.

Reads go straight to the ledger; anything touching the firewall goes
through the Enforcer.
"""

from __future__ import annotations

import logging

from netwarden.engine.enforcer import Enforcer
from netwarden.engine.models import BlockRule, UnblockReport
from netwarden.storage.repos import CriteriaRepo, RuleRepo

logger = logging.getLogger(__name__)


class ControlSurface:
    """Rule listing, criteria management and manual unblock."""

    def __init__(
        self,
        rules: RuleRepo,
        criteria: CriteriaRepo,
        enforcer: Enforcer,
    ) -> None:
        self._rules = rules
        self._criteria = criteria
        self._enforcer = enforcer

    async def list_rules(self) -> list[BlockRule]:
        return await self._rules.list_all()

    async def list_criteria(self) -> list[str]:
        return await self._criteria.list_all()

    async def add_criterion(self, value: str) -> bool:
        """Add a blocking string. False if it already exists.

        Raises ValueError for a blank string.
        """
        if not value or not value.strip():
            raise ValueError("Blocking string must not be empty")
        added = await self._criteria.add(value)
        if added:
            logger.info("Added blocking string %r", value)
        return added

    async def remove_criterion(self, value: str) -> UnblockReport:
        """Delete a blocking string and unblock every IP it matched."""
        if await self._criteria.remove(value):
            logger.info("Removed blocking string %r", value)
        return await self._enforcer.unblock_by_criterion(value)

    async def unblock_by_rule_name(self, rule_name: str) -> bool:
        """Unblock the IP behind a ledger rule. False if the rule is unknown.

        Raises FirewallCommandError if the firewall delete fails.
        """
        rule = await self._rules.get(rule_name)
        if rule is None:
            return False
        await self._enforcer.unblock(rule.ip)
        return True
