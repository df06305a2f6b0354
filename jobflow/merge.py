"""Merging freshly migrated or imported records into the current collection."""

from __future__ import annotations

from typing import Any, Callable, Hashable, Sequence

from jobflow.models import MergeResult


def merge_by_natural_key(
    existing: Sequence[Any],
    incoming: Sequence[Any],
    key_of: Callable[[Any], Hashable],
) -> MergeResult:
    """Append incoming records whose key is not already present.

    Keys are compared exactly; normalizing them (e.g. URLs) is up to ``key_of``.
    Existing records win and are returned unchanged and in order. Incoming
    records are only checked against ``existing``, never against each other.
    """
    existing_keys = {key_of(record) for record in existing}
    merged = list(existing)
    inserted = skipped = 0
    for record in incoming:
        if key_of(record) in existing_keys:
            skipped += 1
            continue
        merged.append(record)
        inserted += 1
    return MergeResult(merged=merged, inserted_count=inserted, skipped_count=skipped)


def url_of(record: Any) -> Any:
    """Natural key of a stored posting dict or a Posting."""
    if isinstance(record, dict):
        return record.get("url")
    return getattr(record, "url", None)


def _upsert_by_id(
    existing: Sequence[dict[str, Any]],
    incoming: Sequence[dict[str, Any]],
    should_replace: Callable[[dict[str, Any], dict[str, Any]], bool],
) -> MergeResult:
    merged = list(existing)
    index = {record.get("id"): i for i, record in enumerate(merged)}
    inserted = skipped = 0
    for record in incoming:
        pos = index.get(record.get("id"))
        if pos is None:
            index[record.get("id")] = len(merged)
            merged.append(record)
            inserted += 1
        elif should_replace(merged[pos], record):
            merged[pos] = record
        else:
            skipped += 1
    return MergeResult(merged=merged, inserted_count=inserted, skipped_count=skipped)


def merge_by_id_newest(
    existing: Sequence[dict[str, Any]],
    incoming: Sequence[dict[str, Any]],
    modified_of: Callable[[dict[str, Any]], Any] = lambda r: r.get("dateModified") or 0,
) -> MergeResult:
    """Upsert by ``id``: an incoming record replaces an existing one only if strictly newer.

    Replaced records keep their position; new ids are appended in incoming order.
    ``skipped_count`` counts incoming records that lost to an existing one.
    """
    return _upsert_by_id(
        existing, incoming, lambda old, new: modified_of(new) > modified_of(old)
    )


def merge_by_id_replace(
    existing: Sequence[dict[str, Any]],
    incoming: Sequence[dict[str, Any]],
) -> MergeResult:
    """Upsert by ``id`` where the incoming record always wins."""
    return _upsert_by_id(existing, incoming, lambda old, new: True)
