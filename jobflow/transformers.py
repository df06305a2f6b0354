"""Pure record transformers, one generation step at a time.

Nothing here touches the store. Every function accepts any record an older
release could have written and always returns a result: unparseable dates
become "now" and unknown enum values are coerced rather than rejected.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable

from jobflow.models import Connection, LegacyRecord, Posting, PostingStatus, RelationshipType
from jobflow.utils import now_ms

logger = logging.getLogger("jobflow")

# Old 1-3 priority to 1-5 interest. Deliberately uneven: "high" means "very excited".
PRIORITY_TO_INTEREST = {1: 2, 2: 3, 3: 5}

DEFAULT_INTEREST = 2


def parse_timestamp(value: Any, now: int | None = None) -> int:
    """Epoch milliseconds from a numeric epoch or an ISO-8601 string.

    Naive ISO strings are read as UTC. Anything unparseable yields ``now``.
    """
    fallback = now if now is not None else now_ms()
    if isinstance(value, bool) or (isinstance(value, float) and not math.isfinite(value)):
        logger.warning("Unparseable timestamp %r, using current time.", value)
        return fallback
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            pass
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return int(parsed.timestamp() * 1000)
    logger.warning("Unparseable timestamp %r, using current time.", value)
    return fallback


def map_legacy_interest(interest: Any) -> int:
    """Legacy 0-5 interest (0 = unrated) to the 1-5 scale.

    A lookup, not a linear rescale: absent/0/1 -> 2, 2 -> 3, 3 -> 3, 4 -> 4,
    anything else -> 5. Non-numeric values count as absent.
    """
    if isinstance(interest, bool) or not isinstance(interest, (int, float)):
        return DEFAULT_INTEREST
    if interest <= 1:
        return 2
    if interest == 2:
        return 3
    if interest == 3:
        return 3
    if interest == 4:
        return 4
    return 5


def map_legacy_status(status: Any) -> PostingStatus:
    """Legacy statuses map 1:1. Values that are not a known status become SAVED."""
    try:
        return PostingStatus(status)
    except ValueError:
        logger.warning("Unknown legacy status %r, coercing to 'saved'.", status)
        return PostingStatus.SAVED


def map_priority_to_interest(priority: int) -> int:
    """Old priority (1 low, 2 medium, 3 high) to interest: 1->2, 2->3, 3->5."""
    try:
        return PRIORITY_TO_INTEREST[priority]
    except KeyError:
        raise ValueError(f"Priority must be 1, 2 or 3, got {priority!r}") from None


def transform_legacy_to_current(record: LegacyRecord, now: int | None = None) -> Posting:
    """Generation-1 application -> current Posting.

    The legacy format never tracked modification time, so ``date_modified``
    starts equal to ``date_added``.
    """
    date_added = parse_timestamp(record.date_added, now)
    date_applied = parse_timestamp(record.date_applied, now) if record.date_applied else None
    return Posting(
        id=record.id,
        url=record.url,
        company=record.company,
        title=record.title,
        location=record.location,
        description=record.description,
        salary=record.salary,
        company_logo=None,
        status=map_legacy_status(record.status),
        interest=map_legacy_interest(record.interest),
        tags=list(record.tags),
        notes=record.notes or "",
        date_added=date_added,
        date_modified=date_added,
        date_applied=date_applied,
        next_action_date=None,
        connection_ids=[],
    )


def _relationship_type(value: Any) -> RelationshipType:
    try:
        return RelationshipType(value)
    except ValueError:
        logger.warning("Unknown relationship type %r, coercing to 'other'.", value)
        return RelationshipType.OTHER


# Fields introduced in schema 3, applied only where the stored value is missing or None.
# Callables are evaluated per connection; ``now`` is passed to those that take it.
CONNECTION_V3_DEFAULTS: tuple[tuple[str, Callable[[int], Any]], ...] = (
    ("email", lambda now: None),
    ("linkedInUrl", lambda now: None),
    ("relationshipType", lambda now: RelationshipType.OTHER.value),
    ("howWeMet", lambda now: None),
    ("relationshipStrength", lambda now: 2),
    ("contactHistory", lambda now: []),
    ("dateAdded", lambda now: now),
    ("dateModified", lambda now: now),
)


def backfill_connection_to_v3(connection: dict[str, Any], now: int | None = None) -> Connection:
    """Fill schema-3 fields on a stored connection without touching present values.

    ``notes`` takes the existing non-empty notes, else the deprecated
    ``relationshipNotes``, else "". ``relationshipNotes`` is not carried forward.
    """
    now = now if now is not None else now_ms()
    filled = dict(connection)
    for name, default in CONNECTION_V3_DEFAULTS:
        if filled.get(name) is None:
            filled[name] = default(now)
    if not isinstance(filled["contactHistory"], list):
        logger.warning("Ignoring malformed contactHistory %r.", filled["contactHistory"])
        filled["contactHistory"] = []

    notes = filled.get("notes") or filled.get("relationshipNotes") or ""
    filled.pop("relationshipNotes", None)

    known = {"id", "name", "notes", *(name for name, _ in CONNECTION_V3_DEFAULTS)}
    return Connection(
        id=filled.get("id", ""),
        name=filled.get("name", ""),
        email=filled["email"],
        linkedin_url=filled["linkedInUrl"],
        relationship_type=_relationship_type(filled["relationshipType"]),
        how_we_met=filled["howWeMet"],
        relationship_strength=filled["relationshipStrength"],
        notes=notes,
        contact_history=list(filled["contactHistory"]),
        date_added=filled["dateAdded"],
        date_modified=filled["dateModified"],
        extra={k: v for k, v in filled.items() if k not in known},
    )


def reconcile_priority(posting: dict[str, Any]) -> dict[str, Any]:
    """Give a posting that still carries ``priority`` an ``interest`` value.

    A present ``interest`` always wins. The superseded ``priority`` key is
    dropped once interest has been settled from it.
    """
    result = dict(posting)
    priority = result.get("priority")
    if result.get("interest") is None and isinstance(priority, int) and priority in PRIORITY_TO_INTEREST:
        result["interest"] = map_priority_to_interest(priority)
        result.pop("priority")
    return result
