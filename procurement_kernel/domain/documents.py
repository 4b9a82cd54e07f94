"""
Canonical document records for receiving and returns.

Responsibility:
    The single shape every engine sees for ordering documents (purchase
    orders and change orders), receipt notes (GRNs), return notes and their
    line items. Loose upstream payloads are normalized into these records by
    ``procurement_modules.receiving.ingestion`` before they reach an engine.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Quantities and unit prices are non-negative Decimals
      (InvalidQuantityError / NegativeAmountError at construction).
    - An ordering document is identified by id AND kind; a purchase order
      and a change order with the same id are different documents.
    - Cumulative fulfillment is never stored on a record. It is always
      recomputed from the full set of active notes.

Item identity:
    Line items carry two references, ``item_id`` (primary) and
    ``base_item_id`` (fallback). Which one is used as the join key is
    decided by ``procurement_engines.item_identity.ITEM_KEY_CHAIN``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from procurement_kernel.domain.charges import ChargeTaxConfig
from procurement_kernel.domain.values import ZERO, round_money, to_decimal
from procurement_kernel.exceptions import InvalidQuantityError, NegativeAmountError


class DocumentKind(str, Enum):
    """Discriminator for ordering documents."""

    PURCHASE_ORDER = "purchase_order"
    CHANGE_ORDER = "change_order"


class OrderingStatus(str, Enum):
    """Ordering document lifecycle as far as receiving is concerned."""

    DRAFT = "draft"
    APPROVED = "approved"
    PARTIALLY_RECEIVED = "partially_received"
    COMPLETED = "completed"


class ReceiptStatus(str, Enum):
    SHIPMENT = "shipment"
    RECEIVED = "received"


class ReturnStatus(str, Enum):
    WAITING = "waiting"
    RETURNED = "returned"


def _quantity(value: object, field_name: str) -> Decimal:
    qty = to_decimal(value, field_name)
    if qty < ZERO:
        raise InvalidQuantityError(field_name, qty)
    return qty


def _price(value: object, field_name: str) -> Decimal:
    price = to_decimal(value, field_name)
    if price < ZERO:
        raise NegativeAmountError(field_name, price)
    return price


@dataclass(frozen=True)
class OrderingDocumentRef:
    """Reference to a purchase order or change order (id + kind)."""

    document_id: str
    kind: DocumentKind

    def __post_init__(self) -> None:
        object.__setattr__(self, "document_id", str(self.document_id))
        if not isinstance(self.kind, DocumentKind):
            object.__setattr__(self, "kind", DocumentKind(self.kind))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.document_id}"


@dataclass(frozen=True)
class OrderedLineItem:
    """A line on a purchase order or change order."""

    item_id: str | None
    ordered_quantity: Decimal
    unit_price: Decimal = ZERO
    base_item_id: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "ordered_quantity", _quantity(self.ordered_quantity, "ordered_quantity")
        )
        object.__setattr__(self, "unit_price", _price(self.unit_price, "unit_price"))

    @property
    def raw_total(self) -> Decimal:
        """Price x quantity, no charges or taxes."""
        return round_money(self.ordered_quantity * self.unit_price)


@dataclass(frozen=True)
class OrderingDocument:
    """A purchase order or change order with its charge/tax configuration."""

    ref: OrderingDocumentRef
    lines: tuple[OrderedLineItem, ...] = ()
    config: ChargeTaxConfig = field(default_factory=ChargeTaxConfig)
    status: OrderingStatus = OrderingStatus.APPROVED
    number: str | None = None
    corporation_id: str | None = None
    project_id: str | None = None

    @property
    def item_total(self) -> Decimal:
        """Sum of the ordered lines' price x quantity."""
        return sum((line.raw_total for line in self.lines), ZERO)


@dataclass(frozen=True)
class ReceiptNoteItem:
    """One received line on a GRN."""

    item_id: str | None
    received_quantity: Decimal
    base_item_id: str | None = None
    is_active: bool = True
    unit_price: Decimal | None = None
    grn_total: Decimal | None = None
    grn_total_with_charges_and_taxes: Decimal | None = None
    id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "received_quantity", _quantity(self.received_quantity, "received_quantity")
        )
        if self.unit_price is not None:
            object.__setattr__(self, "unit_price", _price(self.unit_price, "unit_price"))


@dataclass(frozen=True)
class ReceiptNote:
    """
    A goods receipt note against one ordering document.

    ``id`` is None while the note is still being edited and has never been
    persisted. The monetary fields embed the financial breakdown (per charge
    type and per tax) and are filled in by receipt pricing.
    """

    ref: OrderingDocumentRef
    items: tuple[ReceiptNoteItem, ...] = ()
    id: UUID | None = None
    grn_number: str | None = None
    status: ReceiptStatus = ReceiptStatus.RECEIVED
    is_active: bool = True
    corporation_id: str | None = None
    project_id: str | None = None
    item_total: Decimal | None = None
    freight_amount: Decimal | None = None
    packing_amount: Decimal | None = None
    custom_duties_amount: Decimal | None = None
    other_amount: Decimal | None = None
    charges_total: Decimal | None = None
    tax1_amount: Decimal | None = None
    tax2_amount: Decimal | None = None
    tax_total: Decimal | None = None
    grand_total: Decimal | None = None

    @property
    def active_items(self) -> tuple[ReceiptNoteItem, ...]:
        return tuple(item for item in self.items if item.is_active)


@dataclass(frozen=True)
class ReturnNoteItem:
    """
    One returned line.

    ``id`` is None for items that were never persisted. The store uses the
    presence of ``id`` to decide between update-in-place and insert.
    """

    item_id: str | None
    return_quantity: Decimal
    base_item_id: str | None = None
    is_active: bool = True
    id: UUID | None = None
    return_note_id: UUID | None = None
    unit_price: Decimal | None = None
    return_total: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "return_quantity", _quantity(self.return_quantity, "return_quantity")
        )
        if self.unit_price is not None:
            object.__setattr__(self, "unit_price", _price(self.unit_price, "unit_price"))


@dataclass(frozen=True)
class ReturnNote:
    """A return note against one ordering document."""

    ref: OrderingDocumentRef
    items: tuple[ReturnNoteItem, ...] = ()
    id: UUID | None = None
    return_number: str | None = None
    status: ReturnStatus = ReturnStatus.WAITING
    is_active: bool = True
    receipt_note_id: UUID | None = None
    corporation_id: str | None = None
    project_id: str | None = None

    @property
    def active_items(self) -> tuple[ReturnNoteItem, ...]:
        return tuple(item for item in self.items if item.is_active)
