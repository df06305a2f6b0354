"""Export and import of whole-collection backup files.

Export writes ``{version: 2, exportDate, postings, connections, settings}``.
Import accepts that format and also generation-1 exports (``version`` 1 or
missing), which are run through the legacy transformer first.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from jobflow.merge import merge_by_id_newest, merge_by_id_replace
from jobflow.models import ImportResult, LegacyRecord
from jobflow.store import CONNECTIONS_KEY, POSTINGS_KEY, SETTINGS_KEY, KeyValueStore
from jobflow.transformers import (
    DEFAULT_INTEREST,
    backfill_connection_to_v3,
    reconcile_priority,
    transform_legacy_to_current,
)
from jobflow.utils import now_ms

logger = logging.getLogger("jobflow")

BACKUP_FORMAT_VERSION = 2
DEFAULT_SETTINGS = {"defaultView": "kanban", "theme": "light"}


class BackupFormatError(ValueError):
    """The backup payload is not valid JSON or has no postings list."""


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def create_backup_data(store: KeyValueStore) -> dict[str, Any]:
    stored = await store.get([POSTINGS_KEY, CONNECTIONS_KEY, SETTINGS_KEY])
    return {
        "version": BACKUP_FORMAT_VERSION,
        "exportDate": _iso_now(),
        "postings": stored.get(POSTINGS_KEY) or [],
        "connections": stored.get(CONNECTIONS_KEY) or [],
        "settings": stored.get(SETTINGS_KEY) or dict(DEFAULT_SETTINGS),
    }


def parse_backup(text: str) -> dict[str, Any]:
    """Decode a backup file, upgrading generation-1 exports on the way."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise BackupFormatError(f"Failed to parse JSON backup: {e}") from e
    if not isinstance(raw, dict):
        raise BackupFormatError("Invalid file format: expected a JSON object")

    if raw.get("version") in (None, 1):
        legacy = raw.get("postings") or raw.get("applications") or []
        if not isinstance(legacy, list):
            raise BackupFormatError("Invalid file format: missing postings array")
        logger.info("Upgrading %d postings from a V1 backup file.", len(legacy))
        now = now_ms()
        return {
            "version": BACKUP_FORMAT_VERSION,
            "exportDate": raw.get("exportDate") or _iso_now(),
            "postings": [
                transform_legacy_to_current(LegacyRecord.from_dict(p), now).to_dict()
                for p in legacy
                if isinstance(p, dict)
            ],
            "connections": raw.get("connections") or [],
            "settings": raw.get("settings") or dict(DEFAULT_SETTINGS),
        }

    if not isinstance(raw.get("postings"), list):
        raise BackupFormatError("Invalid file format: missing postings array")
    return raw


def is_valid_posting(posting: Any) -> bool:
    if not isinstance(posting, dict):
        return False
    return (
        isinstance(posting.get("id"), str)
        and isinstance(posting.get("title"), str)
        and isinstance(posting.get("company"), str)
        and isinstance(posting.get("url"), str)
        and len(posting["id"]) > 0
        and len(posting["title"]) > 0
    )


def _with_defaults(posting: dict[str, Any], now: int) -> dict[str, Any]:
    p = reconcile_priority(posting)
    p["status"] = p.get("status") or "saved"
    p["interest"] = p.get("interest") or DEFAULT_INTEREST
    p["tags"] = p.get("tags") or []
    p["notes"] = p.get("notes") or ""
    p["dateAdded"] = p.get("dateAdded") or now
    p["dateModified"] = p.get("dateModified") or now
    p["connectionIds"] = p.get("connectionIds") or []
    return p


async def import_backup(store: KeyValueStore, data: dict[str, Any]) -> ImportResult:
    """Merge a parsed backup into the store.

    Postings: new ids are added, known ids are replaced only by a newer
    ``dateModified``. Connections: the imported copy always wins.
    """
    now = now_ms()
    errors: list[str] = []
    valid: list[dict[str, Any]] = []
    for i, posting in enumerate(data.get("postings") or [], start=1):
        if is_valid_posting(posting):
            valid.append(_with_defaults(posting, now))
        else:
            errors.append(f"Posting {i}: missing required field (id or title)")

    connections = [
        backfill_connection_to_v3(c, now).to_dict()
        for c in data.get("connections") or []
        if isinstance(c, dict)
    ]

    stored = await store.get([POSTINGS_KEY, CONNECTIONS_KEY])
    postings_result = merge_by_id_newest(stored.get(POSTINGS_KEY) or [], valid)
    connections_result = merge_by_id_replace(stored.get(CONNECTIONS_KEY) or [], connections)

    await store.set({
        POSTINGS_KEY: postings_result.merged,
        CONNECTIONS_KEY: connections_result.merged,
    })

    logger.info(
        "Imported %d postings (%d new, %d older than stored), %d connections, %d invalid",
        len(valid),
        postings_result.inserted_count,
        postings_result.skipped_count,
        len(connections),
        len(errors),
    )
    return ImportResult(
        postings=len(valid),
        connections=len(connections),
        skipped=len(errors),
        errors=errors,
    )
