"""
Module: procurement_engines.item_identity
Responsibility:
    Resolve the join key that ties a receipt-note item or return-note item
    back to an ordered line item.

Architecture position:
    Engines -- pure, zero I/O.

Identity chain:
    ``ITEM_KEY_CHAIN`` is an ordered tuple of extractor callables. Each one
    reads one candidate reference from a record; the first that yields a
    non-blank value wins:

        1. primary_item_ref  -- ``record.item_id``
        2. base_item_ref     -- ``record.base_item_id``

    The winning value is normalized (``strip().casefold()``) because item
    identifiers reach us from several upstream sources with inconsistent
    casing. Row position is deliberately not part of the chain: an index is
    only meaningful inside one form and can never join across documents.

Soft failures:
    When every extractor comes back empty the record cannot be matched.
    That is reported as a ``ReconciliationInconsistency`` and the record is
    left out of the sums; it never aborts the calculation.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.item_identity")

ItemKeyExtractor = Callable[[Any], Any]


def primary_item_ref(record: Any) -> Any:
    return getattr(record, "item_id", None)


def base_item_ref(record: Any) -> Any:
    return getattr(record, "base_item_id", None)


ITEM_KEY_CHAIN: tuple[ItemKeyExtractor, ...] = (primary_item_ref, base_item_ref)


def normalize_item_key(value: Any) -> str | None:
    """Trimmed, case-folded key, or None for blank values."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text.casefold()


def resolve_item_key(
    record: Any,
    chain: tuple[ItemKeyExtractor, ...] = ITEM_KEY_CHAIN,
) -> str | None:
    """First non-blank candidate from ``chain``, normalized."""
    for extractor in chain:
        key = normalize_item_key(extractor(record))
        if key is not None:
            return key
    return None


@dataclass(frozen=True)
class ReconciliationInconsistency:
    """
    A note item that could not be matched to an ordered line.

    ``reason`` is ``"unidentified"`` (no usable reference at all) or
    ``"unmatched"`` (a key that no ordered line carries).
    """

    source: str
    note_id: str | None
    position: int
    reason: str
    item_key: str | None = None


def record_inconsistency(
    source: str,
    note_id: Any,
    position: int,
    reason: str,
    item_key: str | None = None,
) -> ReconciliationInconsistency:
    """Build an inconsistency record and log it at WARNING."""
    issue = ReconciliationInconsistency(
        source=source,
        note_id=str(note_id) if note_id is not None else None,
        position=position,
        reason=reason,
        item_key=item_key,
    )
    logger.warning("reconciliation_inconsistency", extra={
        "source": source,
        "note_id": issue.note_id,
        "position": position,
        "reason": reason,
        "item_key": item_key,
    })
    return issue


def index_by_key(
    records: Iterable[Any],
    chain: tuple[ItemKeyExtractor, ...] = ITEM_KEY_CHAIN,
) -> dict[str, Any]:
    """Map resolved key -> record. Records without a key are skipped; first wins."""
    indexed: dict[str, Any] = {}
    for record in records:
        key = resolve_item_key(record, chain)
        if key is not None and key not in indexed:
            indexed[key] = record
    return indexed
