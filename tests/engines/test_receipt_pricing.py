"""
Tests for receipt note pricing.
"""

from decimal import Decimal

import pytest

from procurement_engines.receipt_pricing import price_receipt_note
from procurement_kernel.domain.charges import ChargeTaxConfig
from procurement_kernel.domain.documents import (
    DocumentKind,
    OrderedLineItem,
    OrderingDocument,
    OrderingDocumentRef,
    ReceiptNote,
    ReceiptNoteItem,
)
from procurement_kernel.exceptions import DocumentMismatchError
from tests.conftest import make_receipt


class TestPriceReceiptNote:
    def test_totals_from_ordered_prices(self, purchase_order):
        note = make_receipt(purchase_order.ref, ("ITEM-A", 5), ("ITEM-B", 5))

        priced = price_receipt_note(note, purchase_order).receipt_note

        a, b = priced.items
        assert a.unit_price == Decimal("10.00")
        assert a.grn_total == Decimal("50.00")
        assert b.grn_total == Decimal("20.00")
        assert priced.item_total == Decimal("70.00")
        assert priced.charges_total == Decimal("3.50")
        assert priced.tax_total == Decimal("5.88")
        assert priced.grand_total == Decimal("79.38")

    def test_grand_total_allocated_over_lines(self, purchase_order):
        note = make_receipt(purchase_order.ref, ("ITEM-A", 5), ("ITEM-B", 5))

        result = price_receipt_note(note, purchase_order)

        a, b = result.receipt_note.items
        assert a.grn_total_with_charges_and_taxes == Decimal("56.70")
        assert b.grn_total_with_charges_and_taxes == Decimal("22.68")
        assert result.allocation.rounding_residual.is_zero

    def test_item_price_overrides_ordered_price(self, purchase_order):
        note = ReceiptNote(
            ref=purchase_order.ref,
            items=(ReceiptNoteItem(item_id="ITEM-A", received_quantity=Decimal("2"), unit_price=Decimal("9.00")),),
        )

        priced = price_receipt_note(note, purchase_order).receipt_note

        assert priced.items[0].grn_total == Decimal("18.00")

    def test_unknown_item_priced_at_zero(self, purchase_order):
        note = make_receipt(purchase_order.ref, ("ITEM-Z", 3))

        priced = price_receipt_note(note, purchase_order).receipt_note

        assert priced.items[0].grn_total == Decimal("0.00")
        assert priced.grand_total == Decimal("0.00")

    def test_inactive_items_priced_at_zero(self, purchase_order):
        note = ReceiptNote(
            ref=purchase_order.ref,
            items=(
                ReceiptNoteItem(item_id="ITEM-A", received_quantity=Decimal("5"), is_active=False),
                ReceiptNoteItem(item_id="ITEM-B", received_quantity=Decimal("5")),
            ),
        )

        priced = price_receipt_note(note, purchase_order).receipt_note

        assert priced.items[0].grn_total == Decimal("0")
        assert priced.items[0].grn_total_with_charges_and_taxes == Decimal("0")
        assert priced.item_total == Decimal("20.00")

    def test_absorb_rounding(self, purchase_order):
        note = make_receipt(purchase_order.ref, ("ITEM-A", 1), ("ITEM-A", 1), ("ITEM-A", 1))

        result = price_receipt_note(note, purchase_order, absorb_rounding=True)

        allocated = sum(i.grn_total_with_charges_and_taxes for i in result.receipt_note.items)
        assert allocated == result.receipt_note.grand_total

    def test_other_document_rejected(self, purchase_order):
        other = OrderingDocumentRef("PO-9999", DocumentKind.PURCHASE_ORDER)

        with pytest.raises(DocumentMismatchError):
            price_receipt_note(make_receipt(other, ("ITEM-A", 1)), purchase_order)


class TestEmbeddedBreakdown:
    def setup_method(self):
        ref = OrderingDocumentRef("PO-2002", DocumentKind.PURCHASE_ORDER)
        self.document = OrderingDocument(
            ref=ref,
            lines=(OrderedLineItem(item_id="ITEM-A", ordered_quantity=Decimal("10"), unit_price=Decimal("10.00")),),
            config=ChargeTaxConfig.from_percentages(
                freight="5", packing="2", custom_duties="3", other="1", tax1="8", tax2="2",
            ),
        )

    def test_per_charge_and_per_tax_amounts(self):
        priced = price_receipt_note(make_receipt(self.document.ref, ("ITEM-A", 10)), self.document).receipt_note

        assert priced.item_total == Decimal("100.00")
        assert priced.freight_amount == Decimal("5.00")
        assert priced.packing_amount == Decimal("2.00")
        assert priced.custom_duties_amount == Decimal("3.00")
        assert priced.other_amount == Decimal("1.00")
        assert priced.charges_total == Decimal("11.00")
        # tax base: 100 + taxable freight and packing
        assert priced.tax1_amount == Decimal("8.56")
        assert priced.tax2_amount == Decimal("2.14")
        assert priced.tax_total == Decimal("10.70")
        assert priced.grand_total == Decimal("121.70")

    def test_amounts_match_breakdown(self, purchase_order):
        result = price_receipt_note(make_receipt(purchase_order.ref, ("ITEM-A", 5)), purchase_order)

        note = result.receipt_note
        assert note.freight_amount == result.breakdown.freight_amount.amount == Decimal("2.50")
        assert note.packing_amount == Decimal("0.00")
        assert note.tax1_amount == Decimal("4.20")
        assert note.tax2_amount == Decimal("0.00")
