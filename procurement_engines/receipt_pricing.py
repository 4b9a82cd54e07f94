"""
Module: procurement_engines.receipt_pricing
Responsibility:
    Price a receipt note against its ordering document: per-line GRN totals,
    the document-level breakdown on their sum, and each line's share of the
    grand total.

Architecture position:
    Engines -- pure, zero I/O. Composes breakdown and line_allocation.

Steps:
    1. grn_total = round(received_quantity * unit_price) per active item.
       The unit price falls back to the ordered line's price when the
       receipt item carries none.
    2. breakdown = compute_breakdown(sum(grn_total), document.config)
    3. grn_total_with_charges_and_taxes from allocate_line_item_totals.

Inactive items are priced at zero and take no share of the grand total.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from procurement_engines.breakdown import FinancialBreakdown, compute_breakdown
from procurement_engines.fulfillment import same_document
from procurement_engines.item_identity import index_by_key, resolve_item_key
from procurement_engines.line_allocation import (
    LineAllocationResult,
    LineTotal,
    allocate_line_item_totals,
)
from procurement_kernel.domain.documents import OrderingDocument, ReceiptNote, ReceiptNoteItem
from procurement_kernel.domain.values import ZERO, Money, round_money
from procurement_kernel.exceptions import DocumentMismatchError
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.receipt_pricing")


@dataclass(frozen=True)
class PricedReceiptNote:
    """A receipt note with its monetary fields filled in."""

    receipt_note: ReceiptNote
    breakdown: FinancialBreakdown
    allocation: LineAllocationResult


def price_receipt_note(
    receipt_note: ReceiptNote,
    document: OrderingDocument,
    absorb_rounding: bool = False,
) -> PricedReceiptNote:
    """
    Fill GRN totals and the breakdown on ``receipt_note``.

    Raises:
        DocumentMismatchError: if the note belongs to another document.
    """
    if not same_document(receipt_note.ref, document.ref):
        raise DocumentMismatchError(str(document.ref), str(receipt_note.ref))

    ordered = index_by_key(document.lines)

    priced_items: list[ReceiptNoteItem] = []
    line_totals: list[LineTotal] = []
    for position, item in enumerate(receipt_note.items):
        if not item.is_active:
            priced_items.append(
                replace(item, grn_total=ZERO, grn_total_with_charges_and_taxes=ZERO)
            )
            continue
        unit_price = item.unit_price
        if unit_price is None:
            line = ordered.get(resolve_item_key(item))
            unit_price = line.unit_price if line is not None else ZERO
        grn_total = round_money(item.received_quantity * unit_price)
        priced_items.append(replace(item, unit_price=unit_price, grn_total=grn_total))
        line_totals.append(LineTotal(key=position, raw_total=Money(grn_total)))

    item_total = sum((lt.raw_total for lt in line_totals), Money.zero())
    breakdown = compute_breakdown(item_total=item_total, config=document.config)
    allocation = allocate_line_item_totals(
        grand_total=breakdown.grand_total,
        lines=line_totals,
        item_total=item_total,
        absorb_rounding=absorb_rounding,
    )

    for line in allocation.lines:
        priced_items[line.key] = replace(
            priced_items[line.key],
            grn_total_with_charges_and_taxes=line.total_with_charges_and_taxes.amount,
        )

    priced = replace(
        receipt_note,
        items=tuple(priced_items),
        item_total=breakdown.item_total.amount,
        freight_amount=breakdown.freight_amount.amount,
        packing_amount=breakdown.packing_amount.amount,
        custom_duties_amount=breakdown.custom_duties_amount.amount,
        other_amount=breakdown.other_amount.amount,
        charges_total=breakdown.charges_total.amount,
        tax1_amount=breakdown.tax1_amount.amount,
        tax2_amount=breakdown.tax2_amount.amount,
        tax_total=breakdown.tax_total.amount,
        grand_total=breakdown.grand_total.amount,
    )
    logger.debug("receipt_note_priced", extra={
        "document": str(document.ref),
        "item_total": str(breakdown.item_total.amount),
        "grand_total": str(breakdown.grand_total.amount),
        "rounding_residual": str(allocation.rounding_residual.amount),
    })
    return PricedReceiptNote(receipt_note=priced, breakdown=breakdown, allocation=allocation)
