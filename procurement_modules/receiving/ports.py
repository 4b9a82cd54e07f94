"""
Persistence port for the receiving module.

``ReceivingService`` talks to storage only through ``ReceivingStore``.
``procurement_modules.receiving.repository.SqlAlchemyReceivingStore`` is
the reference adapter; tests use an in-memory fake.

Every method raises ``PersistenceError`` (with ``operation`` set) when the
underlying store fails. Write methods commit independently, so a receipt
note that was saved stays saved even if a later return-note write fails.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable
from uuid import UUID

from procurement_engines.reconciliation import ReturnItemWritePlan
from procurement_kernel.domain.documents import (
    OrderingDocument,
    OrderingDocumentRef,
    OrderingStatus,
    ReceiptNote,
    ReturnNote,
    ReturnNoteItem,
)


@runtime_checkable
class ReceivingStore(Protocol):
    """Protocol for loading and saving receiving documents."""

    # Ordering documents

    def get_ordering_document(self, ref: OrderingDocumentRef) -> OrderingDocument | None:
        ...

    def save_ordering_document(self, document: OrderingDocument) -> OrderingDocument:
        ...

    def update_ordering_document_status(
        self, ref: OrderingDocumentRef, status: OrderingStatus
    ) -> None:
        ...

    # Receipt notes

    def list_active_receipt_notes(self, ref: OrderingDocumentRef) -> Sequence[ReceiptNote]:
        """Active receipt notes of the document, with all their items."""
        ...

    def create_receipt_note(self, receipt_note: ReceiptNote) -> ReceiptNote:
        ...

    def update_receipt_note(self, receipt_note: ReceiptNote) -> ReceiptNote:
        ...

    def list_receipt_numbers(
        self, corporation_id: str | None, exclude_id: UUID | None = None
    ) -> Sequence[str]:
        ...

    # Return notes

    def list_active_return_note_items(self, ref: OrderingDocumentRef) -> Sequence[ReturnNoteItem]:
        """Active items of the document's active return notes."""
        ...

    def list_return_note_items(self, return_note_id: UUID) -> Sequence[ReturnNoteItem]:
        ...

    def create_return_note(self, return_note: ReturnNote) -> ReturnNote:
        """Persist the note, then write all its items with ONE bulk upsert."""
        ...

    def update_return_note(self, return_note: ReturnNote) -> ReturnNote:
        """Update the header; an empty item list deletes every stored item."""
        ...

    def write_return_note_items(self, plan: ReturnItemWritePlan) -> None:
        """Execute a write plan: one bulk upsert or one delete-all."""
        ...

    def delete_return_note_items(self, return_note_id: UUID) -> None:
        ...

    def list_return_numbers(
        self, corporation_id: str | None, exclude_id: UUID | None = None
    ) -> Sequence[str]:
        ...
