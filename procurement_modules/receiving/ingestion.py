"""
Ingestion: loose receiving payloads -> canonical records.

Upstream forms and APIs send the same facts under several field names
(``unit_price`` / ``unitPrice``, ``qty`` / ``quantity`` / ``ordered_quantity``,
``uuid`` / ``item_uuid``). This module is the only place that knows about
those variants. Engines only ever see the records in
``procurement_kernel.domain.documents``. ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from procurement_kernel.domain.charges import (
    DEFAULT_TAXABLE_CHARGES,
    ChargeConfig,
    ChargeTaxConfig,
    ChargeType,
)
from procurement_kernel.domain.documents import (
    DocumentKind,
    OrderedLineItem,
    OrderingDocument,
    OrderingDocumentRef,
    OrderingStatus,
    ReceiptNote,
    ReceiptNoteItem,
    ReceiptStatus,
    ReturnNote,
    ReturnNoteItem,
    ReturnStatus,
)
from procurement_kernel.domain.values import to_decimal
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.ingestion")

Payload = Mapping[str, Any]


# -----------------------------------------------------------------------------
# Field aliases
# -----------------------------------------------------------------------------

ITEM_ID_FIELDS = ("item_uuid", "uuid", "item_id")
BASE_ITEM_ID_FIELDS = ("base_item_uuid", "base_item_id")
UNIT_PRICE_FIELDS = ("unit_price", "unitPrice")
ORDERED_QUANTITY_FIELDS = ("ordered_quantity", "po_quantity", "co_quantity", "quantity", "qty")
RECEIVED_QUANTITY_FIELDS = ("received_quantity", "quantity", "qty")
RETURN_QUANTITY_FIELDS = ("return_quantity", "quantity", "qty")
GRN_ALLOCATED_FIELDS = ("grn_total_with_charges_and_taxes", "grn_total_with_charges_taxes")

CHARGE_FIELD_PREFIX = {
    ChargeType.FREIGHT: "freight_charges",
    ChargeType.PACKING: "packing_charges",
    ChargeType.CUSTOM_DUTIES: "custom_duties_charges",
    ChargeType.OTHER: "other_charges",
}
TAX_FIELDS = {
    "tax1_percentage": ("sales_tax_1_percentage", "tax1_percentage"),
    "tax2_percentage": ("sales_tax_2_percentage", "tax2_percentage"),
}


def first_present(payload: Payload, names: Iterable[str]) -> Any:
    """Value of the first alias that is present and not None."""
    for name in names:
        value = payload.get(name)
        if value is not None:
            return value
    return None


# -----------------------------------------------------------------------------
# Scalar coercion
# -----------------------------------------------------------------------------


def coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, Decimal)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("true", "yes", "1", "on"):
        return True
    if text in ("false", "no", "0", "off", ""):
        return False
    raise ValidationError(f"Cannot interpret {value!r} as a boolean")


def coerce_uuid(value: Any) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return UUID(text)
    except ValueError as e:
        raise ValidationError(f"Invalid UUID: {value!r}") from e


def coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_receipt_status(value: Any) -> ReceiptStatus:
    """``received`` or ``shipment``; anything else is a shipment."""
    text = str(value or "").strip().lower()
    if text == ReceiptStatus.RECEIVED.value:
        return ReceiptStatus.RECEIVED
    return ReceiptStatus.SHIPMENT


def normalize_return_status(value: Any) -> ReturnStatus:
    """``returned`` or ``waiting``; anything else is waiting."""
    text = str(value or "").strip().lower()
    if text == ReturnStatus.RETURNED.value:
        return ReturnStatus.RETURNED
    return ReturnStatus.WAITING


def normalize_ordering_status(value: Any) -> OrderingStatus:
    text = str(value or "").strip().lower().replace(" ", "_")
    try:
        return OrderingStatus(text)
    except ValueError:
        return OrderingStatus.APPROVED


def normalize_document_kind(value: Any) -> DocumentKind:
    """``change_order`` or ``purchase_order`` (the default)."""
    text = str(value or "").strip().lower().replace(" ", "_")
    if text == DocumentKind.CHANGE_ORDER.value:
        return DocumentKind.CHANGE_ORDER
    return DocumentKind.PURCHASE_ORDER


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


def document_ref_from_payload(payload: Payload, kind_field: str = "receipt_type") -> OrderingDocumentRef:
    """
    Ordering document reference of a note payload.

    Change-order notes may carry the change-order id in
    ``purchase_order_uuid`` (legacy format); that is accepted.
    """
    kind = normalize_document_kind(payload.get(kind_field))
    if kind is DocumentKind.CHANGE_ORDER:
        document_id = first_present(payload, ("change_order_uuid", "purchase_order_uuid"))
    else:
        document_id = payload.get("purchase_order_uuid")
    document_id = coerce_text(document_id)
    if document_id is None:
        raise ValidationError(f"{kind.value} reference is missing")
    return OrderingDocumentRef(document_id=document_id, kind=kind)


def charge_tax_config_from_payload(payload: Payload) -> ChargeTaxConfig:
    """Charge and tax percentages; missing percentages are 0."""
    charges = {}
    for charge_type, prefix in CHARGE_FIELD_PREFIX.items():
        charges[charge_type] = ChargeConfig(
            percentage=to_decimal(payload.get(f"{prefix}_percentage"), f"{prefix}_percentage"),
            taxable=coerce_bool(
                payload.get(f"{prefix}_taxable"),
                default=charge_type in DEFAULT_TAXABLE_CHARGES,
            ),
        )
    taxes = {
        name: to_decimal(first_present(payload, aliases), name)
        for name, aliases in TAX_FIELDS.items()
    }
    return ChargeTaxConfig(charges=charges, **taxes)


def ordered_line_from_payload(item: Payload) -> OrderedLineItem:
    return OrderedLineItem(
        item_id=coerce_text(first_present(item, ITEM_ID_FIELDS)),
        base_item_id=coerce_text(first_present(item, BASE_ITEM_ID_FIELDS)),
        ordered_quantity=to_decimal(first_present(item, ORDERED_QUANTITY_FIELDS), "ordered_quantity"),
        unit_price=to_decimal(first_present(item, UNIT_PRICE_FIELDS), "unit_price"),
        description=str(item.get("description") or item.get("item_name") or ""),
    )


def ordering_document_from_payload(payload: Payload, kind: DocumentKind | str | None = None) -> OrderingDocument:
    """Purchase order or change order with its lines and charge/tax config."""
    if kind is None:
        kind = normalize_document_kind(payload.get("kind") or payload.get("document_kind"))
    document_id = coerce_text(first_present(payload, ("uuid", "id", "document_id")))
    if document_id is None:
        raise ValidationError("Ordering document id is missing")
    lines_payload = first_present(payload, ("items", "po_items", "co_items")) or ()
    document = OrderingDocument(
        ref=OrderingDocumentRef(document_id=document_id, kind=kind),
        lines=tuple(ordered_line_from_payload(line) for line in lines_payload),
        config=charge_tax_config_from_payload(payload),
        status=normalize_ordering_status(payload.get("status")),
        number=coerce_text(first_present(payload, ("po_number", "co_number", "number"))),
        corporation_id=coerce_text(payload.get("corporation_uuid")),
        project_id=coerce_text(payload.get("project_uuid")),
    )
    logger.debug("ordering_document_ingested", extra={
        "document": str(document.ref),
        "line_count": len(document.lines),
    })
    return document


def receipt_note_item_from_payload(item: Payload) -> ReceiptNoteItem:
    unit_price = first_present(item, UNIT_PRICE_FIELDS)
    grn_total = item.get("grn_total")
    allocated = first_present(item, GRN_ALLOCATED_FIELDS)
    return ReceiptNoteItem(
        id=coerce_uuid(item.get("id")),
        item_id=coerce_text(first_present(item, ITEM_ID_FIELDS)),
        base_item_id=coerce_text(first_present(item, BASE_ITEM_ID_FIELDS)),
        received_quantity=to_decimal(
            first_present(item, RECEIVED_QUANTITY_FIELDS), "received_quantity"
        ),
        unit_price=to_decimal(unit_price, "unit_price") if unit_price is not None else None,
        grn_total=to_decimal(grn_total, "grn_total") if grn_total is not None else None,
        grn_total_with_charges_and_taxes=(
            to_decimal(allocated, "grn_total_with_charges_and_taxes")
            if allocated is not None
            else None
        ),
        is_active=coerce_bool(item.get("is_active"), default=True),
    )


def receipt_note_from_payload(payload: Payload) -> ReceiptNote:
    """Receipt note (GRN) and its items."""
    items_payload = first_present(payload, ("receipt_items", "items")) or ()
    note = ReceiptNote(
        id=coerce_uuid(first_present(payload, ("uuid", "id"))),
        ref=document_ref_from_payload(payload, "receipt_type"),
        items=tuple(receipt_note_item_from_payload(item) for item in items_payload),
        grn_number=coerce_text(payload.get("grn_number")),
        status=normalize_receipt_status(payload.get("status")),
        is_active=coerce_bool(payload.get("is_active"), default=True),
        corporation_id=coerce_text(payload.get("corporation_uuid")),
        project_id=coerce_text(payload.get("project_uuid")),
    )
    logger.debug("receipt_note_ingested", extra={
        "document": str(note.ref),
        "item_count": len(note.items),
    })
    return note


def return_note_item_from_payload(item: Payload) -> ReturnNoteItem:
    unit_price = first_present(item, UNIT_PRICE_FIELDS)
    return_total = item.get("return_total")
    return ReturnNoteItem(
        id=coerce_uuid(item.get("id")),
        return_note_id=coerce_uuid(first_present(item, ("return_note_uuid", "return_note_id"))),
        item_id=coerce_text(first_present(item, ITEM_ID_FIELDS)),
        base_item_id=coerce_text(first_present(item, BASE_ITEM_ID_FIELDS)),
        return_quantity=to_decimal(first_present(item, RETURN_QUANTITY_FIELDS), "return_quantity"),
        unit_price=to_decimal(unit_price, "unit_price") if unit_price is not None else None,
        return_total=to_decimal(return_total, "return_total") if return_total is not None else None,
        is_active=coerce_bool(item.get("is_active"), default=True),
    )


def return_note_from_payload(payload: Payload) -> ReturnNote:
    """Return note and its items."""
    items_payload = first_present(payload, ("return_items", "items")) or ()
    return ReturnNote(
        id=coerce_uuid(first_present(payload, ("uuid", "id"))),
        ref=document_ref_from_payload(payload, "return_type"),
        items=tuple(return_note_item_from_payload(item) for item in items_payload),
        return_number=coerce_text(payload.get("return_number")),
        status=normalize_return_status(payload.get("status")),
        is_active=coerce_bool(payload.get("is_active"), default=True),
        receipt_note_id=coerce_uuid(first_present(payload, ("receipt_note_uuid", "receipt_note_id"))),
        corporation_id=coerce_text(payload.get("corporation_uuid")),
        project_id=coerce_text(payload.get("project_uuid")),
    )
