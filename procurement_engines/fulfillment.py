"""
Module: procurement_engines.fulfillment
Responsibility:
    The fulfillment ledger: per ordering document and per ordered item, how
    much has already been received on OTHER receipt notes, and therefore how
    much is still left to receive.

Architecture position:
    Engines -- pure calculation layer, zero I/O. The caller loads the active
    receipt notes (``ReceivingStore.list_active_receipt_notes``) and hands
    them in.

Algorithm (leftover for one ordered item):
    1. Take the active receipt notes for the same ordering document -- same
       id AND same kind -- except the note currently being edited.
    2. Sum received_quantity over their active items whose resolved item key
       equals the ordered item's key.
    3. leftover = max(0, ordered_quantity - received).

Invariants enforced:
    - No running counters. Every query rescans the notes it was given, so an
      edited or deactivated note is reflected immediately.
    - Over-receipt clamps the leftover to zero; it never goes negative.
    - A purchase-order receipt is never counted against a change order with
      the same id, and vice versa.

Soft failures:
    Receipt items whose identity cannot be resolved, or whose key matches no
    ordered line, are excluded from the sums and reported as
    ReconciliationInconsistency records (logged at WARNING).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from procurement_engines.item_identity import (
    ReconciliationInconsistency,
    normalize_item_key,
    record_inconsistency,
    resolve_item_key,
)
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.documents import (
    OrderedLineItem,
    OrderingDocumentRef,
    ReceiptNote,
)
from procurement_kernel.domain.values import ZERO, clamp_non_negative
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.fulfillment")


def same_document(a: OrderingDocumentRef, b: OrderingDocumentRef) -> bool:
    """Same kind and same (case-insensitive) id."""
    return a.kind == b.kind and normalize_item_key(a.document_id) == normalize_item_key(
        b.document_id
    )


def _same_note(note_id: Any, exclude_id: Any) -> bool:
    if note_id is None or exclude_id is None:
        return False
    return str(note_id).casefold() == str(exclude_id).casefold()


@dataclass(frozen=True)
class ReceivedTally:
    """
    Cumulative received quantity per item key.

    ``inconsistencies`` lists receipt items left out of ``totals``; when it
    is empty the tally covers every active item it was given.
    """

    totals: Mapping[str, Decimal] = field(default_factory=dict)
    inconsistencies: tuple[ReconciliationInconsistency, ...] = ()
    notes_counted: int = 0

    def received(self, item_key: str | None) -> Decimal:
        if item_key is None:
            return ZERO
        return self.totals.get(item_key, ZERO)

    @property
    def is_complete(self) -> bool:
        return not self.inconsistencies


@traced_engine("fulfillment_tally", "1.0", fingerprint_fields=("ref", "exclude_receipt_note_id"))
def tally_received(
    ref: OrderingDocumentRef,
    receipt_notes: Iterable[ReceiptNote],
    exclude_receipt_note_id: UUID | str | None = None,
    ordered_keys: Iterable[str] | None = None,
) -> ReceivedTally:
    """
    Sum received quantities per item key across the qualifying notes.

    Args:
        ref: Ordering document the notes must reference.
        receipt_notes: Candidate notes (any document; filtered here).
        exclude_receipt_note_id: The note being edited, left out.
        ordered_keys: Keys of the document's ordered lines. When given,
            items with other keys are reported as "unmatched".
    """
    known = set(ordered_keys) if ordered_keys is not None else None
    totals: dict[str, Decimal] = {}
    issues: list[ReconciliationInconsistency] = []
    counted = 0

    for note in receipt_notes:
        if not note.is_active or not same_document(note.ref, ref):
            continue
        if _same_note(note.id, exclude_receipt_note_id):
            continue
        counted += 1
        for position, item in enumerate(note.items):
            if not item.is_active:
                continue
            key = resolve_item_key(item)
            if key is None:
                issues.append(record_inconsistency("receipt_note", note.id, position, "unidentified"))
                continue
            if known is not None and key not in known:
                issues.append(
                    record_inconsistency("receipt_note", note.id, position, "unmatched", key)
                )
                continue
            totals[key] = totals.get(key, ZERO) + item.received_quantity

    logger.debug("fulfillment_tally_computed", extra={
        "document": str(ref),
        "notes_counted": counted,
        "item_keys": len(totals),
        "inconsistencies": len(issues),
    })
    return ReceivedTally(totals=totals, inconsistencies=tuple(issues), notes_counted=counted)


def leftover_quantity(
    ordered_item: OrderedLineItem,
    ref: OrderingDocumentRef,
    receipt_notes: Iterable[ReceiptNote],
    exclude_receipt_note_id: UUID | str | None = None,
) -> Decimal:
    """``max(0, ordered - received elsewhere)`` for one ordered item."""
    key = resolve_item_key(ordered_item)
    if key is None:
        return clamp_non_negative(ordered_item.ordered_quantity)
    tally = tally_received(
        ref=ref,
        receipt_notes=receipt_notes,
        exclude_receipt_note_id=exclude_receipt_note_id,
    )
    return clamp_non_negative(ordered_item.ordered_quantity - tally.received(key))


class FulfillmentLedger:
    """
    Leftover quantities for one ordering document.

    Contract:
        Holds the notes it was built from, never derived totals. Each query
        recomputes from the full note set.
    Non-goals:
        - Does not fetch; the caller supplies the notes.
        - Does not include return notes. Returns are reconciled separately
          (see procurement_engines.reconciliation).
    """

    def __init__(
        self,
        ref: OrderingDocumentRef,
        receipt_notes: Sequence[ReceiptNote],
        ordered_lines: Sequence[OrderedLineItem] = (),
    ):
        self._ref = ref
        self._receipt_notes = tuple(receipt_notes)
        self._ordered_lines = tuple(ordered_lines)

    @property
    def ref(self) -> OrderingDocumentRef:
        return self._ref

    @property
    def receipt_notes(self) -> tuple[ReceiptNote, ...]:
        return self._receipt_notes

    @property
    def ordered_lines(self) -> tuple[OrderedLineItem, ...]:
        return self._ordered_lines

    def _ordered_keys(self) -> list[str] | None:
        if not self._ordered_lines:
            return None
        return [k for k in (resolve_item_key(l) for l in self._ordered_lines) if k]

    def tally(self, exclude_receipt_note_id: UUID | str | None = None) -> ReceivedTally:
        return tally_received(
            ref=self._ref,
            receipt_notes=self._receipt_notes,
            exclude_receipt_note_id=exclude_receipt_note_id,
            ordered_keys=self._ordered_keys(),
        )

    def leftover_quantity(
        self,
        ordered_item: OrderedLineItem,
        exclude_receipt_note_id: UUID | str | None = None,
    ) -> Decimal:
        tally = self.tally(exclude_receipt_note_id)
        return clamp_non_negative(
            ordered_item.ordered_quantity - tally.received(resolve_item_key(ordered_item))
        )

    def leftover_by_key(
        self, exclude_receipt_note_id: UUID | str | None = None
    ) -> tuple[dict[str, Decimal], ReceivedTally]:
        """Leftover for every identifiable ordered line, plus the tally used."""
        tally = self.tally(exclude_receipt_note_id)
        leftovers: dict[str, Decimal] = {}
        for line in self._ordered_lines:
            key = resolve_item_key(line)
            if key is None:
                continue
            ordered = leftovers.get(key, ZERO) + line.ordered_quantity
            leftovers[key] = ordered
        return (
            {k: clamp_non_negative(q - tally.received(k)) for k, q in leftovers.items()},
            tally,
        )
