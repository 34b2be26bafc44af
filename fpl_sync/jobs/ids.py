"""Deterministic sync job ids.

Format: {kind}:{scope|all}[:t{secondary}]:{tag}

    fixtures:12:sync
    player_values:2025-09-14:sync
    tournament_event_results:12:coordinator
    tournament_event_results:12:t314:sync

The id is the deduplication key: two requests for the same kind, scope and
tag map to the same job.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any

SYNC_TAG = "sync"
COORDINATOR_TAG = "coordinator"


def _part(value: Any) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


def job_id(kind: str, scope: Any = None, secondary_scope: Any = None, tag: str = SYNC_TAG) -> str:
    parts = [kind, "all" if scope is None else _part(scope)]
    if secondary_scope is not None:
        parts.append(f"t{_part(secondary_scope)}")
    parts.append(tag)
    return ":".join(parts)


@dataclass(frozen=True)
class ParsedJobId:
    kind: str
    scope: str | None
    secondary_scope: str | None
    tag: str


def parse_job_id(value: str) -> ParsedJobId:
    """Split a job id back into its parts (scopes stay strings).

    Raises:
        ValueError: If the id is malformed
    """
    parts = value.split(":")
    if len(parts) == 3:
        kind, scope, tag = parts
        secondary = None
    elif len(parts) == 4 and parts[2].startswith("t"):
        kind, scope, secondary, tag = parts
        secondary = secondary[1:]
    else:
        raise ValueError(f"Malformed job id: {value!r}")
    if not kind or not tag:
        raise ValueError(f"Malformed job id: {value!r}")
    return ParsedJobId(kind, None if scope == "all" else scope, secondary, tag)
