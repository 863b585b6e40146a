"""Windows-specific capture helpers."""

from __future__ import annotations

import csv
import logging
import subprocess

from netwarden.capture.base import InspectionError

logger = logging.getLogger(__name__)


class TasklistInspector:
    """Process names via ``tasklist /FI "PID eq <pid>" /FO CSV``."""

    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout

    def process_name(self, pid: int) -> str | None:
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV"],
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
            raise InspectionError(f"tasklist failed for PID {pid}: {exc}") from exc

        if result.returncode != 0:
            raise InspectionError(
                f"tasklist exited {result.returncode} for PID {pid}: "
                f"{result.stderr.strip()}"
            )
        return parse_tasklist_csv(result.stdout)


def parse_tasklist_csv(text: str) -> str | None:
    """Extract the image name from tasklist CSV output.

    Format: header row then ``"Image Name","PID","Session Name",...``.
    When nothing matches tasklist prints a single INFO line instead.
    """
    rows = [row for row in csv.reader(text.strip().splitlines()) if row]
    if len(rows) < 2:
        return None
    name = rows[1][0].strip()
    return name or None
