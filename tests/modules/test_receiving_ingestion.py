"""
Tests for payload ingestion into canonical records.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from procurement_kernel.domain.charges import ChargeType
from procurement_kernel.domain.documents import (
    DocumentKind,
    OrderingStatus,
    ReceiptStatus,
    ReturnStatus,
)
from procurement_kernel.exceptions import InvalidAmountError, ValidationError
from procurement_modules.receiving.ingestion import (
    charge_tax_config_from_payload,
    coerce_bool,
    coerce_uuid,
    document_ref_from_payload,
    ordering_document_from_payload,
    receipt_note_from_payload,
    return_note_from_payload,
)


class TestCoercion:
    @pytest.mark.parametrize("raw,expected", [
        (None, False), (True, True), (1, True), (0, False),
        ("yes", True), ("False", False), ("", False),
    ])
    def test_coerce_bool(self, raw, expected):
        assert coerce_bool(raw) is expected

    def test_coerce_bool_rejects_junk(self):
        with pytest.raises(ValidationError):
            coerce_bool("maybe")

    def test_coerce_uuid(self):
        value = uuid4()
        assert coerce_uuid(str(value)) == value
        assert coerce_uuid("  ") is None

    def test_coerce_uuid_rejects_junk(self):
        with pytest.raises(ValidationError):
            coerce_uuid("not-a-uuid")


class TestDocumentRef:
    def test_purchase_order(self):
        ref = document_ref_from_payload({"purchase_order_uuid": "po-1"})

        assert ref.kind is DocumentKind.PURCHASE_ORDER
        assert ref.document_id == "po-1"

    def test_change_order(self):
        ref = document_ref_from_payload({"receipt_type": "change_order", "change_order_uuid": "co-1"})

        assert ref.kind is DocumentKind.CHANGE_ORDER
        assert ref.document_id == "co-1"

    def test_change_order_in_legacy_field(self):
        ref = document_ref_from_payload({"receipt_type": "change_order", "purchase_order_uuid": "co-2"})

        assert ref == ref.__class__("co-2", DocumentKind.CHANGE_ORDER)

    def test_missing_reference(self):
        with pytest.raises(ValidationError):
            document_ref_from_payload({"receipt_type": "purchase_order"})


class TestChargeTaxConfig:
    def test_percentages_and_taxability(self):
        config = charge_tax_config_from_payload({
            "freight_charges_percentage": "5",
            "freight_charges_taxable": "false",
            "other_charges_percentage": 2,
            "other_charges_taxable": True,
            "sales_tax_1_percentage": "8.25",
            "tax2_percentage": "1",
        })

        assert config.charge(ChargeType.FREIGHT).percentage == Decimal("5")
        assert config.charge(ChargeType.FREIGHT).taxable is False
        assert config.charge(ChargeType.OTHER).taxable is True
        assert config.charge(ChargeType.PACKING).taxable is True
        assert config.tax1_percentage == Decimal("8.25")
        assert config.tax2_percentage == Decimal("1")

    def test_missing_percentages_are_zero(self):
        config = charge_tax_config_from_payload({})

        assert config.charge(ChargeType.CUSTOM_DUTIES).percentage == Decimal("0")
        assert config.tax1_percentage == Decimal("0")


class TestOrderingDocument:
    def test_purchase_order_with_aliases(self):
        doc = ordering_document_from_payload({
            "uuid": "po-1",
            "po_number": "PO-0001",
            "status": "Partially Received",
            "corporation_uuid": "corp-1",
            "po_items": [
                {"item_uuid": "A", "po_quantity": "20", "unitPrice": "10.00"},
                {"uuid": "B", "qty": 5, "unit_price": 4},
            ],
            "freight_charges_percentage": "5",
        })

        assert doc.ref.kind is DocumentKind.PURCHASE_ORDER
        assert doc.number == "PO-0001"
        assert doc.status is OrderingStatus.PARTIALLY_RECEIVED
        assert [line.item_id for line in doc.lines] == ["A", "B"]
        assert doc.lines[0].ordered_quantity == Decimal("20")
        assert doc.lines[1].unit_price == Decimal("4")
        assert doc.item_total == Decimal("220.00")

    def test_explicit_kind(self):
        doc = ordering_document_from_payload({"uuid": "co-1", "co_items": []}, kind=DocumentKind.CHANGE_ORDER)

        assert doc.ref.kind is DocumentKind.CHANGE_ORDER
        assert doc.status is OrderingStatus.APPROVED

    def test_missing_id(self):
        with pytest.raises(ValidationError):
            ordering_document_from_payload({"items": []})

    def test_bad_number(self):
        with pytest.raises(InvalidAmountError):
            ordering_document_from_payload({"uuid": "po-1", "items": [{"item_uuid": "A", "quantity": "lots"}]})


class TestReceiptNote:
    def test_receipt_note(self):
        note_id = uuid4()
        note = receipt_note_from_payload({
            "uuid": str(note_id),
            "purchase_order_uuid": "po-1",
            "grn_number": "GRN-000003",
            "status": "RECEIVED",
            "receipt_items": [
                {"item_uuid": "A", "received_quantity": "5", "grn_total_with_charges_taxes": "56.70"},
                {"base_item_uuid": "B", "qty": "2", "is_active": "false"},
            ],
        })

        assert note.id == note_id
        assert note.status is ReceiptStatus.RECEIVED
        assert note.grn_number == "GRN-000003"
        first, second = note.items
        assert first.received_quantity == Decimal("5")
        assert first.grn_total_with_charges_and_taxes == Decimal("56.70")
        assert second.item_id is None
        assert second.base_item_id == "B"
        assert second.is_active is False

    def test_unknown_status_is_shipment(self):
        note = receipt_note_from_payload({"purchase_order_uuid": "po-1", "status": "in transit"})

        assert note.status is ReceiptStatus.SHIPMENT
        assert note.id is None


class TestReturnNote:
    def test_return_note(self):
        note = return_note_from_payload({
            "return_type": "change_order",
            "change_order_uuid": "co-1",
            "status": "returned",
            "return_items": [{"item_uuid": "A", "return_quantity": "3", "unit_price": "2.50"}],
        })

        assert note.ref.kind is DocumentKind.CHANGE_ORDER
        assert note.status is ReturnStatus.RETURNED
        assert note.items[0].return_quantity == Decimal("3")
        assert note.items[0].unit_price == Decimal("2.50")

    def test_default_status_is_waiting(self):
        note = return_note_from_payload({"purchase_order_uuid": "po-1"})

        assert note.status is ReturnStatus.WAITING
