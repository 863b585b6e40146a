"""Remote identity resolution for observed connections.

Turns a raw remote IP into the label the blocking criteria are matched
against. Resolution order, first success wins:
  1. Reverse DNS via ``socket.gethostbyaddr()`` — first hostname
  2. Cloud provider range containment — fixed provider label
  3. The IP itself
"""

from __future__ import annotations

import asyncio
import logging
import socket

from netwarden.cloud_ranges import CloudRangeIndex

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_LABEL = "aws.amazon.com"


class RemoteResolver:
    """Resolves remote IPs to labels.

    DNS failures and timeouts degrade to "no hostname". Dataset failures
    raise CloudRangeError; the caller decides what to skip.
    """

    def __init__(
        self,
        index: CloudRangeIndex,
        provider_label: str = DEFAULT_PROVIDER_LABEL,
        dns_timeout: float = 2.0,
    ) -> None:
        self._index = index
        self._provider_label = provider_label
        self._dns_timeout = dns_timeout

    async def resolve(self, ip: str) -> str:
        """Resolve an IP address to its label."""
        hostnames = await self.lookup_hostnames(ip)
        if hostnames:
            return hostnames[0]

        if await asyncio.to_thread(self._index.contains, ip):
            return self._provider_label

        return ip

    async def lookup_hostnames(self, ip: str) -> list[str]:
        """Reverse DNS with a bounded wait. Empty list on any failure."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._reverse_dns, ip),
                timeout=self._dns_timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("Reverse DNS timed out for %s", ip)
            return []

    @staticmethod
    def _reverse_dns(ip: str) -> list[str]:
        """PTR lookup: primary hostname followed by aliases."""
        try:
            hostname, aliases, _addrs = socket.gethostbyaddr(ip)
        except (socket.herror, socket.gaierror, OSError) as exc:
            logger.debug("Reverse DNS failed for %s: %s", ip, exc)
            return []
        return [name for name in (hostname, *aliases) if name]
