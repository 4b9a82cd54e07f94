"""
Module: procurement_engines.reconciliation
Responsibility:
    Reconcile detected shortfalls against return notes that already exist
    for the same ordering document, turn what is left into a return-note
    draft, and plan the single bulk write for a return note's items.

Architecture position:
    Engines -- pure calculation layer, zero I/O. The store supplies the
    existing return-note items and executes the write plan.

Reconciliation rule:
    remaining = max(0, shortfall - sum(active return quantities for the item))
    Items whose remaining shortfall is zero are dropped.

Upsert key discipline:
    A return note's items are written with exactly one bulk call. Each item
    is matched by item identity against the items already stored for that
    note: a match carries the stored id (update in place), anything else is
    sent without an ``id`` key (insert). An empty item list is a delete-all,
    never an upsert of an empty array.

Over-return:
    Asking to return more than the remaining shortfall is rejected with
    OverReturnError. It is not clamped.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from procurement_engines.item_identity import (
    ReconciliationInconsistency,
    normalize_item_key,
    record_inconsistency,
    resolve_item_key,
)
from procurement_engines.shortfall import ShortfallItem
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.documents import (
    OrderingDocumentRef,
    ReturnNote,
    ReturnNoteItem,
    ReturnStatus,
)
from procurement_kernel.domain.values import (
    ZERO,
    clamp_non_negative,
    round_money,
    to_decimal,
)
from procurement_kernel.exceptions import InvalidQuantityError, OverReturnError
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")


@dataclass(frozen=True)
class ReconciledShortfall:
    """Shortfall still uncovered after existing returns."""

    items: tuple[ShortfallItem, ...] = ()
    inconsistencies: tuple[ReconciliationInconsistency, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def is_complete(self) -> bool:
        return not self.inconsistencies

    def remaining_by_key(self) -> dict[str, Decimal]:
        return {item.item_key: item.shortfall_quantity for item in self.items}

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def tally_returned(
    return_items: Iterable[ReturnNoteItem],
) -> tuple[dict[str, Decimal], tuple[ReconciliationInconsistency, ...]]:
    """Sum active return quantities per item key."""
    totals: dict[str, Decimal] = {}
    issues: list[ReconciliationInconsistency] = []
    for position, item in enumerate(return_items):
        if not item.is_active:
            continue
        key = resolve_item_key(item)
        if key is None:
            issues.append(
                record_inconsistency("return_note", item.return_note_id, position, "unidentified")
            )
            continue
        totals[key] = totals.get(key, ZERO) + item.return_quantity
    return totals, tuple(issues)


@traced_engine("reconciliation", "1.0")
def reconcile_remaining_shortfall(
    shortfall_items: Sequence[ShortfallItem],
    return_items: Iterable[ReturnNoteItem],
) -> ReconciledShortfall:
    """
    Reduce each shortfall by what has already been returned for the item.

    ``return_items`` must be the active items of the active return notes
    for the same ordering document (``list_active_return_note_items``).
    """
    returned, issues = tally_returned(return_items)

    remaining: list[ShortfallItem] = []
    for item in shortfall_items:
        left = clamp_non_negative(item.shortfall_quantity - returned.get(item.item_key, ZERO))
        if left > ZERO:
            remaining.append(item.with_shortfall(left))

    logger.info("shortfall_reconciled", extra={
        "shortfall_count": len(shortfall_items),
        "remaining_count": len(remaining),
        "returned_item_keys": len(returned),
        "inconsistencies": len(issues),
    })
    return ReconciledShortfall(items=tuple(remaining), inconsistencies=issues)


def build_return_note_draft(
    ref: OrderingDocumentRef,
    remaining: Iterable[ShortfallItem],
    receipt_note_id: UUID | None = None,
    return_quantities: Mapping[str, Decimal] | None = None,
    corporation_id: str | None = None,
    project_id: str | None = None,
) -> ReturnNote:
    """
    New return note with one item per remaining shortfall.

    ``return_quantity`` defaults to the shortfall; ``return_quantities``
    may override it per item key (validated, see validate_return_quantities).
    Items carry no id -- they have never been persisted.
    """
    remaining = tuple(remaining)
    overrides = {
        normalize_item_key(key): to_decimal(qty, "return_quantity")
        for key, qty in (return_quantities or {}).items()
    }
    if overrides:
        validate_return_quantities(
            overrides, {item.item_key: item.shortfall_quantity for item in remaining}
        )

    items: list[ReturnNoteItem] = []
    for shortfall in remaining:
        quantity = overrides.get(shortfall.item_key, shortfall.shortfall_quantity)
        ordered = shortfall.item
        items.append(
            ReturnNoteItem(
                item_id=ordered.item_id,
                base_item_id=ordered.base_item_id,
                return_quantity=quantity,
                unit_price=ordered.unit_price,
                return_total=round_money(quantity * ordered.unit_price),
            )
        )

    return ReturnNote(
        ref=ref,
        items=tuple(items),
        status=ReturnStatus.WAITING,
        receipt_note_id=receipt_note_id,
        corporation_id=corporation_id,
        project_id=project_id,
    )


def validate_return_quantities(
    requested: Mapping[str, Decimal],
    remaining: Mapping[str, Decimal],
) -> None:
    """
    Reject non-positive returns and returns beyond the remaining shortfall.

    Keys are normalized item keys. An item with no remaining shortfall has
    an allowance of zero.

    Raises:
        InvalidQuantityError: for a zero or negative quantity.
        OverReturnError: for a quantity above the allowance.
    """
    for key, quantity in requested.items():
        if quantity <= ZERO:
            raise InvalidQuantityError("return_quantity", quantity, reason="must be positive")
        allowed = remaining.get(key, ZERO)
        if quantity > allowed:
            logger.warning("over_return_rejected", extra={
                "item_key": key,
                "requested": str(quantity),
                "allowed": str(allowed),
            })
            raise OverReturnError(key, quantity, allowed)


class WriteAction(str, Enum):
    UPSERT = "upsert"
    DELETE_ALL = "delete_all"


@dataclass(frozen=True)
class ReturnItemWritePlan:
    """
    The one write to issue for a return note's items.

    ``rows`` are bulk payload dicts. Rows that update a stored item contain
    ``"id"``; rows that insert do not have the key at all.
    """

    return_note_id: UUID
    action: WriteAction
    rows: tuple[dict[str, Any], ...] = ()
    skipped: tuple[ReconciliationInconsistency, ...] = field(default_factory=tuple)

    @property
    def update_count(self) -> int:
        return sum(1 for row in self.rows if "id" in row)

    @property
    def insert_count(self) -> int:
        return sum(1 for row in self.rows if "id" not in row)


@traced_engine("return_item_write_plan", "1.0", fingerprint_fields=("return_note_id",))
def plan_return_item_writes(
    return_note_id: UUID,
    ref: OrderingDocumentRef,
    items: Sequence[ReturnNoteItem],
    existing_items: Iterable[ReturnNoteItem],
) -> ReturnItemWritePlan:
    """
    Plan the bulk write of ``items`` for return note ``return_note_id``.

    Args:
        return_note_id: The (already persisted) return note.
        ref: Ordering document, denormalized onto every row.
        items: Desired item list.
        existing_items: Items currently stored for this return note.
    """
    if not items:
        logger.info("return_item_write_planned", extra={
            "return_note_id": str(return_note_id),
            "action": WriteAction.DELETE_ALL.value,
        })
        return ReturnItemWritePlan(return_note_id=return_note_id, action=WriteAction.DELETE_ALL)

    stored_ids: dict[str, UUID] = {}
    for stored in existing_items:
        key = resolve_item_key(stored)
        if key is not None and stored.id is not None and key not in stored_ids:
            stored_ids[key] = stored.id

    rows: list[dict[str, Any]] = []
    skipped: list[ReconciliationInconsistency] = []
    for position, item in enumerate(items):
        key = resolve_item_key(item)
        if key is None:
            skipped.append(
                record_inconsistency("return_note", return_note_id, position, "unidentified")
            )
            continue
        row: dict[str, Any] = {
            "return_note_id": return_note_id,
            "document_ref": ref.document_id,
            "document_kind": ref.kind.value,
            "item_ref": item.item_id,
            "base_item_ref": item.base_item_id,
            "return_quantity": item.return_quantity,
            "unit_price": item.unit_price,
            "return_total": item.return_total,
            "is_active": item.is_active,
        }
        stored_id = stored_ids.get(key)
        if stored_id is not None:
            row = {"id": stored_id, **row}
        rows.append(row)

    plan = ReturnItemWritePlan(
        return_note_id=return_note_id,
        action=WriteAction.UPSERT,
        rows=tuple(rows),
        skipped=tuple(skipped),
    )
    logger.info("return_item_write_planned", extra={
        "return_note_id": str(return_note_id),
        "action": plan.action.value,
        "update_count": plan.update_count,
        "insert_count": plan.insert_count,
        "skipped": len(skipped),
    })
    return plan
