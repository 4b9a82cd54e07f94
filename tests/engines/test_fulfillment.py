"""
Tests for the fulfillment ledger.

Covers:
- Leftover = ordered - received on other active notes
- Exclusion of the note being edited
- Inactive notes and items
- Document id AND kind matching
- Over-receipt clamping
- Unidentified and unmatched receipt items
"""

from decimal import Decimal
from uuid import uuid4

from procurement_engines.fulfillment import (
    FulfillmentLedger,
    leftover_quantity,
    same_document,
    tally_received,
)
from procurement_kernel.domain.documents import (
    DocumentKind,
    OrderingDocumentRef,
    ReceiptNote,
    ReceiptNoteItem,
)
from tests.conftest import make_receipt


class TestSameDocument:
    def test_case_insensitive_id(self):
        a = OrderingDocumentRef("po-1", DocumentKind.PURCHASE_ORDER)
        b = OrderingDocumentRef("PO-1", DocumentKind.PURCHASE_ORDER)
        assert same_document(a, b)

    def test_kind_must_match(self):
        a = OrderingDocumentRef("PO-1", DocumentKind.PURCHASE_ORDER)
        b = OrderingDocumentRef("PO-1", DocumentKind.CHANGE_ORDER)
        assert not same_document(a, b)


class TestLeftover:
    def test_leftover_after_other_notes(self, purchase_order):
        notes = [
            make_receipt(purchase_order.ref, ("ITEM-A", 8), note_id=uuid4()),
            make_receipt(purchase_order.ref, ("ITEM-A", 2), ("ITEM-B", 5), note_id=uuid4()),
        ]
        ledger = FulfillmentLedger(purchase_order.ref, notes, purchase_order.lines)

        leftovers, tally = ledger.leftover_by_key()

        assert leftovers == {"item-a": Decimal("10"), "item-b": Decimal("0")}
        assert tally.notes_counted == 2
        assert tally.is_complete

    def test_note_being_edited_is_excluded(self, purchase_order):
        editing_id = uuid4()
        notes = [
            make_receipt(purchase_order.ref, ("ITEM-A", 8), note_id=editing_id),
            make_receipt(purchase_order.ref, ("ITEM-A", 2), note_id=uuid4()),
        ]
        ledger = FulfillmentLedger(purchase_order.ref, notes, purchase_order.lines)

        line_a = purchase_order.lines[0]
        assert ledger.leftover_quantity(line_a, exclude_receipt_note_id=editing_id) == Decimal("18")
        assert ledger.leftover_quantity(line_a) == Decimal("10")

    def test_exclusion_matches_string_ids(self, purchase_order):
        editing_id = uuid4()
        notes = [make_receipt(purchase_order.ref, ("ITEM-A", 8), note_id=editing_id)]
        ledger = FulfillmentLedger(purchase_order.ref, notes, purchase_order.lines)

        leftovers, _ = ledger.leftover_by_key(exclude_receipt_note_id=str(editing_id).upper())

        assert leftovers["item-a"] == Decimal("20")

    def test_inactive_notes_and_items_ignored(self, purchase_order):
        inactive_note = make_receipt(purchase_order.ref, ("ITEM-A", 8), note_id=uuid4(), is_active=False)
        note_with_inactive_item = ReceiptNote(
            ref=purchase_order.ref,
            id=uuid4(),
            items=(ReceiptNoteItem(item_id="ITEM-A", received_quantity=Decimal("5"), is_active=False),),
        )
        ledger = FulfillmentLedger(
            purchase_order.ref, [inactive_note, note_with_inactive_item], purchase_order.lines
        )

        leftovers, tally = ledger.leftover_by_key()

        assert leftovers["item-a"] == Decimal("20")
        assert tally.notes_counted == 1

    def test_other_document_kind_not_counted(self, purchase_order):
        co_ref = OrderingDocumentRef(purchase_order.ref.document_id, DocumentKind.CHANGE_ORDER)
        notes = [make_receipt(co_ref, ("ITEM-A", 15), note_id=uuid4())]
        ledger = FulfillmentLedger(purchase_order.ref, notes, purchase_order.lines)

        leftovers, _ = ledger.leftover_by_key()

        assert leftovers["item-a"] == Decimal("20")

    def test_over_receipt_clamps_to_zero(self, purchase_order):
        notes = [make_receipt(purchase_order.ref, ("ITEM-A", 25), note_id=uuid4())]
        ledger = FulfillmentLedger(purchase_order.ref, notes, purchase_order.lines)

        leftovers, _ = ledger.leftover_by_key()

        assert leftovers["item-a"] == Decimal("0")

    def test_base_item_reference_matches(self, purchase_order):
        note = ReceiptNote(
            ref=purchase_order.ref,
            id=uuid4(),
            items=(ReceiptNoteItem(item_id=None, base_item_id="item-b", received_quantity=Decimal("2")),),
        )
        ledger = FulfillmentLedger(purchase_order.ref, [note], purchase_order.lines)

        leftovers, _ = ledger.leftover_by_key()

        assert leftovers["item-b"] == Decimal("3")

    def test_module_level_leftover(self, purchase_order):
        notes = [make_receipt(purchase_order.ref, ("ITEM-A", 4), note_id=uuid4())]

        left = leftover_quantity(purchase_order.lines[0], purchase_order.ref, notes)

        assert left == Decimal("16")


class TestSoftFailures:
    def test_unidentified_item_reported(self, purchase_order):
        note = ReceiptNote(
            ref=purchase_order.ref,
            id=uuid4(),
            items=(
                ReceiptNoteItem(item_id=None, received_quantity=Decimal("3")),
                ReceiptNoteItem(item_id="ITEM-A", received_quantity=Decimal("3")),
            ),
        )
        ledger = FulfillmentLedger(purchase_order.ref, [note], purchase_order.lines)

        leftovers, tally = ledger.leftover_by_key()

        assert leftovers["item-a"] == Decimal("17")
        assert not tally.is_complete
        assert tally.inconsistencies[0].reason == "unidentified"
        assert tally.inconsistencies[0].position == 0

    def test_unmatched_item_reported(self, purchase_order):
        notes = [make_receipt(purchase_order.ref, ("ITEM-Z", 3), note_id=uuid4())]
        ledger = FulfillmentLedger(purchase_order.ref, notes, purchase_order.lines)

        _, tally = ledger.leftover_by_key()

        assert tally.inconsistencies[0].reason == "unmatched"
        assert tally.inconsistencies[0].item_key == "item-z"

    def test_tally_without_ordered_keys_counts_everything(self, purchase_order):
        notes = [make_receipt(purchase_order.ref, ("ITEM-Z", 3), note_id=uuid4())]

        tally = tally_received(ref=purchase_order.ref, receipt_notes=notes)

        assert tally.received("item-z") == Decimal("3")
        assert tally.received(None) == Decimal("0")


class TestRecomputation:
    def test_ledger_reflects_notes_it_was_given(self, purchase_order):
        note_id = uuid4()
        before = FulfillmentLedger(
            purchase_order.ref,
            [make_receipt(purchase_order.ref, ("ITEM-A", 8), note_id=note_id)],
            purchase_order.lines,
        )
        after = FulfillmentLedger(
            purchase_order.ref,
            [make_receipt(purchase_order.ref, ("ITEM-A", 8), note_id=note_id, is_active=False)],
            purchase_order.lines,
        )

        assert before.leftover_by_key()[0]["item-a"] == Decimal("12")
        assert after.leftover_by_key()[0]["item-a"] == Decimal("20")
