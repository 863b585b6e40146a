"""Connection enumeration and process identity."""

from __future__ import annotations

# Aliased: the platform/ subpackage shadows the stdlib name in this namespace
import platform as _platform

from netwarden.capture.base import ProcessInspector


def default_inspector(timeout: float = 5.0) -> ProcessInspector:
    """Pick the process inspector for the running platform."""
    if _platform.system() == "Windows":
        from netwarden.capture.platform.windows import TasklistInspector

        return TasklistInspector(timeout=timeout)

    from netwarden.capture.psutil_ import PsutilInspector

    return PsutilInspector()
