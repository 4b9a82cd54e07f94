"""
Tests for shortfall reconciliation, return-note drafts and the return-item
write plan.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from procurement_engines.reconciliation import (
    WriteAction,
    build_return_note_draft,
    plan_return_item_writes,
    reconcile_remaining_shortfall,
    tally_returned,
    validate_return_quantities,
)
from procurement_engines.shortfall import ShortfallItem
from procurement_kernel.domain.documents import (
    OrderedLineItem,
    ReturnNoteItem,
    ReturnStatus,
)
from procurement_kernel.exceptions import InvalidQuantityError, OverReturnError


def _shortfall(item_id="ITEM-A", quantity="15", unit_price="10.00"):
    line = OrderedLineItem(item_id=item_id, ordered_quantity=Decimal("20"), unit_price=Decimal(unit_price))
    return ShortfallItem(
        item_key=item_id.lower(),
        item=line,
        ordered_quantity=Decimal("20"),
        received_quantity=Decimal("20") - Decimal(quantity),
        leftover_quantity=Decimal("20"),
        shortfall_quantity=Decimal(quantity),
    )


def _returned(item_id, quantity, is_active=True, **kwargs):
    return ReturnNoteItem(item_id=item_id, return_quantity=Decimal(quantity), is_active=is_active, **kwargs)


class TestReconcileRemainingShortfall:
    def test_partially_covered(self):
        result = reconcile_remaining_shortfall([_shortfall(quantity="15")], [_returned("ITEM-A", "10")])

        assert result.remaining_by_key() == {"item-a": Decimal("5")}

    def test_fully_covered_item_removed(self):
        result = reconcile_remaining_shortfall([_shortfall(quantity="15")], [_returned("item-a", "15")])

        assert result.is_empty
        assert len(result) == 0

    def test_over_covered_item_removed(self):
        result = reconcile_remaining_shortfall([_shortfall(quantity="5")], [_returned("ITEM-A", "9")])

        assert result.is_empty

    def test_returns_summed_across_notes(self):
        returns = [_returned("ITEM-A", "4"), _returned("ITEM-A", "6")]

        result = reconcile_remaining_shortfall([_shortfall(quantity="15")], returns)

        assert result.remaining_by_key() == {"item-a": Decimal("5")}

    def test_inactive_return_items_ignored(self):
        result = reconcile_remaining_shortfall(
            [_shortfall(quantity="15")], [_returned("ITEM-A", "10", is_active=False)],
        )

        assert result.remaining_by_key() == {"item-a": Decimal("15")}

    def test_other_items_untouched(self):
        result = reconcile_remaining_shortfall(
            [_shortfall("ITEM-A", "15"), _shortfall("ITEM-B", "3")],
            [_returned("ITEM-A", "15")],
        )

        assert [item.item_key for item in result] == ["item-b"]

    def test_unidentified_return_item_reported(self):
        result = reconcile_remaining_shortfall([_shortfall()], [_returned(None, "3")])

        assert not result.is_complete
        assert result.inconsistencies[0].reason == "unidentified"
        assert result.remaining_by_key() == {"item-a": Decimal("15")}


class TestTallyReturned:
    def test_base_reference_used_when_primary_missing(self):
        totals, issues = tally_returned([_returned(None, "2", base_item_id="ITEM-A")])

        assert totals == {"item-a": Decimal("2")}
        assert issues == ()


class TestBuildReturnNoteDraft:
    def test_defaults_to_full_shortfall(self, po_ref):
        receipt_id = uuid4()

        draft = build_return_note_draft(po_ref, [_shortfall(quantity="5")], receipt_note_id=receipt_id)

        [item] = draft.items
        assert draft.status is ReturnStatus.WAITING
        assert draft.id is None
        assert draft.receipt_note_id == receipt_id
        assert item.id is None
        assert item.return_quantity == Decimal("5")
        assert item.unit_price == Decimal("10.00")
        assert item.return_total == Decimal("50.00")

    def test_override_quantity(self, po_ref):
        draft = build_return_note_draft(
            po_ref, [_shortfall(quantity="5")], return_quantities={"ITEM-A": "2"},
        )

        assert draft.items[0].return_quantity == Decimal("2")
        assert draft.items[0].return_total == Decimal("20.00")

    def test_return_total_rounded(self, po_ref):
        draft = build_return_note_draft(po_ref, [_shortfall(quantity="3", unit_price="3.335")])

        assert draft.items[0].return_total == Decimal("10.01")

    def test_over_return_rejected(self, po_ref):
        with pytest.raises(OverReturnError) as exc_info:
            build_return_note_draft(po_ref, [_shortfall(quantity="5")], return_quantities={"item-a": "6"})

        assert exc_info.value.allowed == Decimal("5")
        assert exc_info.value.requested == Decimal("6")


class TestValidateReturnQuantities:
    def test_within_allowance(self):
        validate_return_quantities({"a": Decimal("5")}, {"a": Decimal("5")})

    def test_zero_rejected(self):
        with pytest.raises(InvalidQuantityError):
            validate_return_quantities({"a": Decimal("0")}, {"a": Decimal("5")})

    def test_item_without_shortfall_has_no_allowance(self, captured_logs):
        with pytest.raises(OverReturnError) as exc_info:
            validate_return_quantities({"b": Decimal("1")}, {"a": Decimal("5")})

        assert exc_info.value.code == "OVER_RETURN"
        assert any(r["message"] == "over_return_rejected" for r in captured_logs())


class TestPlanReturnItemWrites:
    """One bulk write per save; stored ids only for matched items."""

    def setup_method(self):
        self.return_note_id = uuid4()

    def test_empty_list_is_delete_all(self, po_ref):
        plan = plan_return_item_writes(
            return_note_id=self.return_note_id, ref=po_ref, items=[], existing_items=[],
        )

        assert plan.action is WriteAction.DELETE_ALL
        assert plan.rows == ()

    def test_new_items_have_no_id_key(self, po_ref):
        plan = plan_return_item_writes(
            return_note_id=self.return_note_id,
            ref=po_ref,
            items=[_returned("ITEM-A", "2"), _returned("ITEM-B", "1")],
            existing_items=[],
        )

        assert plan.action is WriteAction.UPSERT
        assert all("id" not in row for row in plan.rows)
        assert plan.insert_count == 2
        assert plan.update_count == 0

    def test_matched_items_carry_stored_id(self, po_ref):
        stored_id = uuid4()
        existing = [_returned("item-a", "5", id=stored_id, return_note_id=self.return_note_id)]

        plan = plan_return_item_writes(
            return_note_id=self.return_note_id,
            ref=po_ref,
            items=[_returned("ITEM-A", "3"), _returned("ITEM-B", "1")],
            existing_items=existing,
        )

        updated, inserted = plan.rows
        assert updated["id"] == stored_id
        assert updated["return_quantity"] == Decimal("3")
        assert "id" not in inserted
        assert plan.update_count == 1
        assert plan.insert_count == 1

    def test_rows_carry_document_reference(self, po_ref):
        plan = plan_return_item_writes(
            return_note_id=self.return_note_id, ref=po_ref,
            items=[_returned("ITEM-A", "1")], existing_items=[],
        )

        row = plan.rows[0]
        assert row["return_note_id"] == self.return_note_id
        assert row["document_ref"] == po_ref.document_id
        assert row["document_kind"] == po_ref.kind.value

    def test_unidentified_items_skipped(self, po_ref):
        plan = plan_return_item_writes(
            return_note_id=self.return_note_id, ref=po_ref,
            items=[_returned(None, "1"), _returned("ITEM-A", "1")], existing_items=[],
        )

        assert len(plan.rows) == 1
        assert plan.skipped[0].position == 0
