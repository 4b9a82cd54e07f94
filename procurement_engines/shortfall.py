"""
Module: procurement_engines.shortfall
Responsibility:
    Compare what the receipt note being edited says was received against
    what the fulfillment ledger says was still outstanding, and list the
    under-delivered items.

Architecture position:
    Engines -- pure, zero I/O. Runs synchronously over already-loaded state
    at the moment the user saves; it never fetches anything itself.

Rule, per item on the receipt note:
    leftover = ledger leftover, excluding this receipt note
    received = quantity entered on this (possibly unsaved) note
    shortfall when received < leftover and leftover > 0,
    shortfall_quantity = leftover - received

Invariants enforced:
    - The result holds exactly the under-fulfilled items. Items with no
      shortfall are dropped, never padded in with zero.
    - Several rows for the same item on one note are added together before
      comparing.

Failure modes:
    - DocumentMismatchError if the receipt note and the ledger reference
      different ordering documents.
    - Unidentifiable or unmatched rows are soft: reported in
      ``inconsistencies`` and skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

from procurement_engines.fulfillment import FulfillmentLedger, same_document
from procurement_engines.item_identity import (
    ReconciliationInconsistency,
    index_by_key,
    record_inconsistency,
    resolve_item_key,
)
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.documents import OrderedLineItem, ReceiptNote
from procurement_kernel.domain.values import ZERO
from procurement_kernel.exceptions import DocumentMismatchError
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.shortfall")


@dataclass(frozen=True)
class ShortfallItem:
    """One under-fulfilled ordered item."""

    item_key: str
    item: OrderedLineItem
    ordered_quantity: Decimal
    received_quantity: Decimal
    leftover_quantity: Decimal
    shortfall_quantity: Decimal

    def with_shortfall(self, quantity: Decimal) -> ShortfallItem:
        return replace(self, shortfall_quantity=quantity)


@dataclass(frozen=True)
class ShortfallDetection:
    """Shortfall items plus the rows that could not be evaluated."""

    items: tuple[ShortfallItem, ...] = ()
    inconsistencies: tuple[ReconciliationInconsistency, ...] = ()

    @property
    def has_shortfall(self) -> bool:
        return bool(self.items)

    @property
    def is_complete(self) -> bool:
        return not self.inconsistencies

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@traced_engine("shortfall", "1.0")
def detect_shortfalls(receipt_note: ReceiptNote, ledger: FulfillmentLedger) -> ShortfallDetection:
    """
    Detect shortfalls for ``receipt_note`` against ``ledger``.

    ``ledger`` must be built from the other active receipt notes of the
    same ordering document and its ordered lines.
    """
    if not same_document(receipt_note.ref, ledger.ref):
        raise DocumentMismatchError(str(ledger.ref), str(receipt_note.ref))

    ordered_by_key: dict[str, OrderedLineItem] = index_by_key(ledger.ordered_lines)
    ordered_totals: dict[str, Decimal] = {}
    for line in ledger.ordered_lines:
        line_key = resolve_item_key(line)
        if line_key is not None:
            ordered_totals[line_key] = ordered_totals.get(line_key, ZERO) + line.ordered_quantity
    leftovers, tally = ledger.leftover_by_key(exclude_receipt_note_id=receipt_note.id)
    issues: list[ReconciliationInconsistency] = list(tally.inconsistencies)

    received_by_key: dict[str, Decimal] = {}
    for position, item in enumerate(receipt_note.items):
        if not item.is_active:
            continue
        key = resolve_item_key(item)
        if key is None:
            issues.append(
                record_inconsistency("receipt_note", receipt_note.id, position, "unidentified")
            )
            continue
        if key not in ordered_by_key:
            issues.append(
                record_inconsistency("receipt_note", receipt_note.id, position, "unmatched", key)
            )
            continue
        received_by_key[key] = received_by_key.get(key, ZERO) + item.received_quantity

    shortfalls: list[ShortfallItem] = []
    for key, received in received_by_key.items():
        leftover = leftovers.get(key, ZERO)
        if leftover > ZERO and received < leftover:
            ordered = ordered_by_key[key]
            shortfalls.append(
                ShortfallItem(
                    item_key=key,
                    item=ordered,
                    ordered_quantity=ordered_totals[key],
                    received_quantity=received,
                    leftover_quantity=leftover,
                    shortfall_quantity=leftover - received,
                )
            )

    if shortfalls:
        logger.info("shortfall_detected", extra={
            "document": str(receipt_note.ref),
            "receipt_note_id": str(receipt_note.id) if receipt_note.id else None,
            "shortfall_count": len(shortfalls),
            "items": [
                {"item_key": s.item_key, "shortfall": str(s.shortfall_quantity)}
                for s in shortfalls
            ],
        })
    else:
        logger.debug("shortfall_none", extra={"document": str(receipt_note.ref)})

    return ShortfallDetection(items=tuple(shortfalls), inconsistencies=tuple(issues))
