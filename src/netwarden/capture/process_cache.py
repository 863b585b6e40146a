"""PID → process name cache shared by concurrent pipeline runs."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterable

from netwarden.capture.base import InspectionError, ProcessInspector

logger = logging.getLogger(__name__)


class ProcessNameCache:
    """Memoizes process name lookups, including failed ones.

    A failed or empty lookup is cached as None so short-lived processes do
    not trigger repeated process-list queries. Entries live until pruned,
    or for ``ttl`` seconds when it is set. Concurrent misses for one PID
    share a single lookup.

    Thread-safe: all cache access is guarded by a lock.
    """

    def __init__(
        self,
        inspector: ProcessInspector,
        timeout: float = 5.0,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._inspector = inspector
        self._timeout = timeout
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[int, tuple[str | None, float]] = {}
        self._lock = threading.Lock()
        self._pending: dict[int, asyncio.Future[str | None]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_cached(self, pid: int) -> tuple[bool, str | None]:
        """Return ``(hit, name)`` without triggering a lookup."""
        with self._lock:
            entry = self._entries.get(pid)
            if entry is None:
                return False, None
            name, stored_at = entry
            if self._ttl is not None and self._clock() - stored_at > self._ttl:
                del self._entries[pid]
                return False, None
            return True, name

    async def resolve(self, pid: int) -> str | None:
        """Return the image name for ``pid``, or None if it cannot be found."""
        if pid <= 0:
            return None

        hit, name = self.get_cached(pid)
        if hit:
            return name

        pending = self._pending.get(pid)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(pid))
            self._pending[pid] = pending
            pending.add_done_callback(lambda done: self._forget_pending(pid, done))
        # One waiter being cancelled must not cancel the shared lookup
        return await asyncio.shield(pending)

    def prune(self, live_pids: Iterable[int]) -> int:
        """Drop entries for PIDs not in ``live_pids``. Returns how many went.

        A PID that disappears and is later reused gets a fresh lookup.
        """
        keep = set(live_pids)
        with self._lock:
            stale = [pid for pid in self._entries if pid not in keep]
            for pid in stale:
                del self._entries[pid]
        if stale:
            logger.debug("Pruned %d process cache entries", len(stale))
        return len(stale)

    def _forget_pending(self, pid: int, done: asyncio.Future[str | None]) -> None:
        if self._pending.get(pid) is done:
            del self._pending[pid]

    async def _fetch(self, pid: int) -> str | None:
        name = await self._lookup(pid)
        with self._lock:
            self._entries[pid] = (name, self._clock())
        return name

    async def _lookup(self, pid: int) -> str | None:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._inspector.process_name, pid),
                timeout=self._timeout,
            )
        except InspectionError as exc:
            logger.warning("Process lookup failed for PID %d: %s", pid, exc)
        except asyncio.TimeoutError:
            logger.warning("Process lookup timed out for PID %d", pid)
        return None
