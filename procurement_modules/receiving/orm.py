"""
SQLAlchemy ORM persistence models for the receiving module.

Responsibility
--------------
Database-backed persistence for ordering documents (as far as receiving
needs them), receipt notes, return notes and their items.

Ordering documents, items, corporations and projects are owned upstream;
references to them are ``String(100)`` fields with NO foreign key.

Invariants enforced
-------------------
* All quantities and monetary fields use ``Decimal`` (Numeric(38,9)).
* Enum fields are stored as String(50) holding the enum value.
* An ordering document is unique by (document_ref, kind).
* Return-note items repeat the ordering document reference so
  "all active return items of a document" is a single indexed query.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import TrackedBase
from procurement_kernel.domain.charges import ChargeConfig, ChargeTaxConfig, ChargeType
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

ZERO = Decimal("0")

# ---------------------------------------------------------------------------
# OrderingDocumentModel
# ---------------------------------------------------------------------------


class OrderingDocumentModel(TrackedBase):
    """
    A purchase order or change order with its charge/tax configuration.

    Maps to ``OrderingDocument`` in ``procurement_kernel.domain.documents``.
    """

    __tablename__ = "receiving_ordering_documents"

    __table_args__ = (
        UniqueConstraint("document_ref", "kind", name="uq_ordering_document_ref_kind"),
        Index("idx_ordering_document_corporation", "corporation_id"),
    )

    document_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="approved")
    number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    corporation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    freight_percentage: Mapped[Decimal] = mapped_column(default=ZERO)
    freight_taxable: Mapped[bool] = mapped_column(Boolean, default=False)
    packing_percentage: Mapped[Decimal] = mapped_column(default=ZERO)
    packing_taxable: Mapped[bool] = mapped_column(Boolean, default=False)
    custom_duties_percentage: Mapped[Decimal] = mapped_column(default=ZERO)
    custom_duties_taxable: Mapped[bool] = mapped_column(Boolean, default=False)
    other_percentage: Mapped[Decimal] = mapped_column(default=ZERO)
    other_taxable: Mapped[bool] = mapped_column(Boolean, default=False)
    tax1_percentage: Mapped[Decimal] = mapped_column(default=ZERO)
    tax2_percentage: Mapped[Decimal] = mapped_column(default=ZERO)

    lines: Mapped[list[OrderingLineModel]] = relationship(
        "OrderingLineModel",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderingLineModel.line_number",
    )

    def to_dto(self) -> OrderingDocument:
        config = ChargeTaxConfig(
            charges={
                charge_type: ChargeConfig(
                    percentage=getattr(self, f"{charge_type.value}_percentage"),
                    taxable=getattr(self, f"{charge_type.value}_taxable"),
                )
                for charge_type in ChargeType
            },
            tax1_percentage=self.tax1_percentage,
            tax2_percentage=self.tax2_percentage,
        )
        return OrderingDocument(
            ref=OrderingDocumentRef(self.document_ref, DocumentKind(self.kind)),
            lines=tuple(line.to_dto() for line in self.lines),
            config=config,
            status=OrderingStatus(self.status),
            number=self.number,
            corporation_id=self.corporation_id,
            project_id=self.project_id,
        )

    def apply_dto(self, dto: OrderingDocument, actor_id: UUID) -> None:
        """Copy header fields and charge/tax config from ``dto``."""
        self.status = dto.status.value
        self.number = dto.number
        self.corporation_id = dto.corporation_id
        self.project_id = dto.project_id
        for charge_type, cfg in dto.config.charges.items():
            setattr(self, f"{charge_type.value}_percentage", cfg.percentage)
            setattr(self, f"{charge_type.value}_taxable", cfg.taxable)
        self.tax1_percentage = dto.config.tax1_percentage
        self.tax2_percentage = dto.config.tax2_percentage
        self.touch(actor_id)

    @classmethod
    def from_dto(cls, dto: OrderingDocument, created_by_id: UUID) -> OrderingDocumentModel:
        model = cls(
            document_ref=dto.ref.document_id,
            kind=dto.ref.kind.value,
            created_by_id=created_by_id,
        )
        model.apply_dto(dto, created_by_id)
        model.updated_by_id = None
        model.lines = [
            OrderingLineModel.from_dto(line, number, created_by_id)
            for number, line in enumerate(dto.lines, start=1)
        ]
        return model

    def __repr__(self) -> str:
        return f"<OrderingDocumentModel {self.kind}:{self.document_ref} [{self.status}]>"


class OrderingLineModel(TrackedBase):
    """An ordered line item. Belongs to exactly one ordering document."""

    __tablename__ = "receiving_ordering_lines"

    __table_args__ = (
        Index("idx_ordering_line_document", "ordering_document_id"),
    )

    ordering_document_id: Mapped[UUID] = mapped_column(
        ForeignKey("receiving_ordering_documents.id"), nullable=False,
    )
    line_number: Mapped[int]
    item_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    base_item_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ordered_quantity: Mapped[Decimal] = mapped_column(default=ZERO)
    unit_price: Mapped[Decimal] = mapped_column(default=ZERO)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    document: Mapped[OrderingDocumentModel] = relationship(
        "OrderingDocumentModel", back_populates="lines",
    )

    def to_dto(self) -> OrderedLineItem:
        return OrderedLineItem(
            item_id=self.item_ref,
            base_item_id=self.base_item_ref,
            ordered_quantity=self.ordered_quantity,
            unit_price=self.unit_price,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto: OrderedLineItem, line_number: int, created_by_id: UUID) -> OrderingLineModel:
        return cls(
            line_number=line_number,
            item_ref=dto.item_id,
            base_item_ref=dto.base_item_id,
            ordered_quantity=dto.ordered_quantity,
            unit_price=dto.unit_price,
            description=dto.description,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# ReceiptNoteModel
# ---------------------------------------------------------------------------


class ReceiptNoteModel(TrackedBase):
    """
    A goods receipt note (GRN).

    Maps to ``ReceiptNote``. Monetary totals are the priced values at the
    time of the save.
    """

    __tablename__ = "receiving_receipt_notes"

    __table_args__ = (
        Index("idx_receipt_note_document", "document_ref", "document_kind"),
        Index("idx_receipt_note_number", "corporation_id", "grn_number"),
    )

    document_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    document_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    grn_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="shipment")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    corporation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_total: Mapped[Decimal | None]
    freight_amount: Mapped[Decimal | None]
    packing_amount: Mapped[Decimal | None]
    custom_duties_amount: Mapped[Decimal | None]
    other_amount: Mapped[Decimal | None]
    charges_total: Mapped[Decimal | None]
    tax1_amount: Mapped[Decimal | None]
    tax2_amount: Mapped[Decimal | None]
    tax_total: Mapped[Decimal | None]
    grand_total: Mapped[Decimal | None]

    items: Mapped[list[ReceiptNoteItemModel]] = relationship(
        "ReceiptNoteItemModel",
        back_populates="receipt_note",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReceiptNoteItemModel.line_number",
    )

    def to_dto(self) -> ReceiptNote:
        return ReceiptNote(
            id=self.id,
            ref=OrderingDocumentRef(self.document_ref, DocumentKind(self.document_kind)),
            items=tuple(item.to_dto() for item in self.items),
            grn_number=self.grn_number,
            status=ReceiptStatus(self.status),
            is_active=self.is_active,
            corporation_id=self.corporation_id,
            project_id=self.project_id,
            item_total=self.item_total,
            freight_amount=self.freight_amount,
            packing_amount=self.packing_amount,
            custom_duties_amount=self.custom_duties_amount,
            other_amount=self.other_amount,
            charges_total=self.charges_total,
            tax1_amount=self.tax1_amount,
            tax2_amount=self.tax2_amount,
            tax_total=self.tax_total,
            grand_total=self.grand_total,
        )

    def apply_dto(self, dto: ReceiptNote, actor_id: UUID) -> None:
        """Copy every field from ``dto`` and replace the item list."""
        self.document_ref = dto.ref.document_id
        self.document_kind = dto.ref.kind.value
        self.grn_number = dto.grn_number
        self.status = dto.status.value
        self.is_active = dto.is_active
        self.corporation_id = dto.corporation_id
        self.project_id = dto.project_id
        self.item_total = dto.item_total
        self.freight_amount = dto.freight_amount
        self.packing_amount = dto.packing_amount
        self.custom_duties_amount = dto.custom_duties_amount
        self.other_amount = dto.other_amount
        self.charges_total = dto.charges_total
        self.tax1_amount = dto.tax1_amount
        self.tax2_amount = dto.tax2_amount
        self.tax_total = dto.tax_total
        self.grand_total = dto.grand_total
        self.items = [
            ReceiptNoteItemModel.from_dto(item, number, actor_id)
            for number, item in enumerate(dto.items, start=1)
        ]

    @classmethod
    def from_dto(cls, dto: ReceiptNote, created_by_id: UUID) -> ReceiptNoteModel:
        model = cls(created_by_id=created_by_id)
        if dto.id is not None:
            model.id = dto.id
        model.apply_dto(dto, created_by_id)
        return model

    def __repr__(self) -> str:
        return f"<ReceiptNoteModel {self.grn_number} [{self.status}]>"


class ReceiptNoteItemModel(TrackedBase):
    """A received line. Belongs to exactly one receipt note."""

    __tablename__ = "receiving_receipt_note_items"

    __table_args__ = (
        Index("idx_receipt_item_note", "receipt_note_id"),
    )

    receipt_note_id: Mapped[UUID] = mapped_column(
        ForeignKey("receiving_receipt_notes.id"), nullable=False,
    )
    line_number: Mapped[int]
    item_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    base_item_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    received_quantity: Mapped[Decimal] = mapped_column(default=ZERO)
    unit_price: Mapped[Decimal | None]
    grn_total: Mapped[Decimal | None]
    grn_total_with_charges_and_taxes: Mapped[Decimal | None]
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    receipt_note: Mapped[ReceiptNoteModel] = relationship(
        "ReceiptNoteModel", back_populates="items",
    )

    def to_dto(self) -> ReceiptNoteItem:
        return ReceiptNoteItem(
            id=self.id,
            item_id=self.item_ref,
            base_item_id=self.base_item_ref,
            received_quantity=self.received_quantity,
            unit_price=self.unit_price,
            grn_total=self.grn_total,
            grn_total_with_charges_and_taxes=self.grn_total_with_charges_and_taxes,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: ReceiptNoteItem, line_number: int, created_by_id: UUID) -> ReceiptNoteItemModel:
        """Item rows are rewritten on every save, so a fresh id is assigned."""
        return cls(
            line_number=line_number,
            item_ref=dto.item_id,
            base_item_ref=dto.base_item_id,
            received_quantity=dto.received_quantity,
            unit_price=dto.unit_price,
            grn_total=dto.grn_total,
            grn_total_with_charges_and_taxes=dto.grn_total_with_charges_and_taxes,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# ReturnNoteModel
# ---------------------------------------------------------------------------


class ReturnNoteModel(TrackedBase):
    """
    A return note.

    Items are NOT a cascading relationship: they are written in one bulk
    upsert or one delete by the store, never through the unit of work.
    """

    __tablename__ = "receiving_return_notes"

    __table_args__ = (
        Index("idx_return_note_document", "document_ref", "document_kind"),
        Index("idx_return_note_number", "corporation_id", "return_number"),
    )

    document_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    document_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    return_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="waiting")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    receipt_note_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("receiving_receipt_notes.id"), nullable=True,
    )
    corporation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self, items: tuple[ReturnNoteItem, ...] = ()) -> ReturnNote:
        return ReturnNote(
            id=self.id,
            ref=OrderingDocumentRef(self.document_ref, DocumentKind(self.document_kind)),
            items=items,
            return_number=self.return_number,
            status=ReturnStatus(self.status),
            is_active=self.is_active,
            receipt_note_id=self.receipt_note_id,
            corporation_id=self.corporation_id,
            project_id=self.project_id,
        )

    def apply_dto(self, dto: ReturnNote) -> None:
        self.document_ref = dto.ref.document_id
        self.document_kind = dto.ref.kind.value
        self.return_number = dto.return_number
        self.status = dto.status.value
        self.is_active = dto.is_active
        self.receipt_note_id = dto.receipt_note_id
        self.corporation_id = dto.corporation_id
        self.project_id = dto.project_id

    @classmethod
    def from_dto(cls, dto: ReturnNote, created_by_id: UUID) -> ReturnNoteModel:
        model = cls(created_by_id=created_by_id)
        if dto.id is not None:
            model.id = dto.id
        model.apply_dto(dto)
        return model

    def __repr__(self) -> str:
        return f"<ReturnNoteModel {self.return_number} [{self.status}]>"


class ReturnNoteItemModel(TrackedBase):
    """A returned line. Belongs to exactly one return note."""

    __tablename__ = "receiving_return_note_items"

    __table_args__ = (
        Index("idx_return_item_note", "return_note_id"),
        Index("idx_return_item_document", "document_ref", "document_kind"),
    )

    return_note_id: Mapped[UUID] = mapped_column(
        ForeignKey("receiving_return_notes.id"), nullable=False,
    )
    document_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    document_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    item_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    base_item_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    return_quantity: Mapped[Decimal] = mapped_column(default=ZERO)
    unit_price: Mapped[Decimal | None]
    return_total: Mapped[Decimal | None]
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> ReturnNoteItem:
        return ReturnNoteItem(
            id=self.id,
            return_note_id=self.return_note_id,
            item_id=self.item_ref,
            base_item_id=self.base_item_ref,
            return_quantity=self.return_quantity,
            unit_price=self.unit_price,
            return_total=self.return_total,
            is_active=self.is_active,
        )
