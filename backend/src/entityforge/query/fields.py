"""Field-list sanitization.

Field lists come from schema documents and client requests. Anything that
is not a non-empty string naming a real column is dropped here, before a
query is built, so no column lookup ever sees an empty or unknown name.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from typing import Any

logger = logging.getLogger(__name__)


def sanitize_field_list(
    entity: str,
    list_name: str,
    entries: Iterable[Any] | None,
    known: Collection[str],
) -> list[str]:
    """Return the valid, de-duplicated entries of a field list in order.

    Logs a single WARNING naming every dropped entry.
    """
    valid: list[str] = []
    dropped: list[Any] = []
    for entry in entries or []:
        if isinstance(entry, str) and entry.strip() and entry in known:
            if entry not in valid:
                valid.append(entry)
        else:
            dropped.append(entry)

    if dropped:
        logger.warning(
            "Stripped invalid entries from %s.%s: %s",
            entity, list_name, ", ".join(repr(e) for e in dropped),
        )
    return valid
