"""Decision engine — matches a resolved label against blocking criteria."""

from __future__ import annotations

from collections.abc import Iterable


def should_block(label: str, criteria: Iterable[str]) -> str | None:
    """Return the first criterion contained in ``label``, or None.

    Case-sensitive substring test.
    """
    for criterion in criteria:
        if criterion in label:
            return criterion
    return None
