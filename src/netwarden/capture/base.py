"""Capture protocols — connection enumeration and process inspection."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from netwarden.engine.models import Connection


class CaptureError(Exception):
    """Enumerating host connections failed."""


class InspectionError(Exception):
    """The process-listing facility failed (as opposed to "no such process")."""


@runtime_checkable
class ConnectionSource(Protocol):
    """Lists the host's current TCP connections."""

    def list_tcp(self) -> list[Connection]:
        """Return every TCP connection visible to the host, in any state."""
        ...


@runtime_checkable
class ProcessInspector(Protocol):
    """Looks up a process image name by PID."""

    def process_name(self, pid: int) -> str | None:
        """Return the image name, None if no such process.

        Raises InspectionError when the lookup itself fails.
        """
        ...
