"""
SqlAlchemyReceivingStore -- ReceivingStore over the receiving ORM models.

Responsibility:
    Load and save ordering documents, receipt notes and return notes.
    Each write method owns its transaction: it commits on success, and on
    any SQLAlchemy error rolls back and raises PersistenceError.

Architecture position:
    Modules layer adapter. Implements procurement_modules.receiving.ports.

Invariants enforced:
    - Return-note items are written with exactly ONE statement per save:
      ``INSERT ... ON CONFLICT (id) DO UPDATE`` for a non-empty item list,
      ``DELETE ... WHERE return_note_id = ?`` for an empty one.
    - Item matching is done by procurement_engines.reconciliation
      (plan_return_item_writes); the store only executes the plan.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procurement_engines.reconciliation import (
    ReturnItemWritePlan,
    WriteAction,
    plan_return_item_writes,
)
from procurement_kernel.domain.documents import (
    OrderingDocument,
    OrderingDocumentRef,
    OrderingStatus,
    ReceiptNote,
    ReturnNote,
    ReturnNoteItem,
)
from procurement_kernel.exceptions import PersistenceError
from procurement_kernel.logging_config import get_logger
from procurement_modules.receiving.orm import (
    OrderingDocumentModel,
    ReceiptNoteModel,
    ReturnNoteItemModel,
    ReturnNoteModel,
)

logger = get_logger("modules.receiving.repository")

_UPSERT_UPDATE_COLUMNS = (
    "item_ref",
    "base_item_ref",
    "return_quantity",
    "unit_price",
    "return_total",
    "is_active",
    "updated_by_id",
)


class SqlAlchemyReceivingStore:
    """
    Receiving store backed by a SQLAlchemy session.

    Args:
        session: Open session; the store commits and rolls back on it.
        actor_id: Recorded as created_by_id / updated_by_id on every row.
    """

    def __init__(self, session: Session, actor_id: UUID):
        self._session = session
        self._actor_id = actor_id

    @contextmanager
    def _operation(self, name: str, commit: bool = False) -> Iterator[None]:
        try:
            yield
            if commit:
                self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error("receiving_store_operation_failed", extra={
                "operation": name,
                "error_type": type(e).__name__,
            })
            raise PersistenceError(name, str(e)) from e

    # ------------------------------------------------------------------
    # Ordering documents
    # ------------------------------------------------------------------

    def _ordering_model(self, ref: OrderingDocumentRef) -> OrderingDocumentModel | None:
        return self._session.execute(
            select(OrderingDocumentModel).where(
                func.lower(OrderingDocumentModel.document_ref) == ref.document_id.lower(),
                OrderingDocumentModel.kind == ref.kind.value,
            )
        ).scalar_one_or_none()

    def get_ordering_document(self, ref: OrderingDocumentRef) -> OrderingDocument | None:
        with self._operation("get_ordering_document"):
            model = self._ordering_model(ref)
            return model.to_dto() if model is not None else None

    def save_ordering_document(self, document: OrderingDocument) -> OrderingDocument:
        """Insert the document with its lines, or update header and config."""
        with self._operation("save_ordering_document", commit=True):
            model = self._ordering_model(document.ref)
            if model is None:
                model = OrderingDocumentModel.from_dto(document, self._actor_id)
                self._session.add(model)
            else:
                model.apply_dto(document, self._actor_id)
        logger.info("ordering_document_saved", extra={
            "document": str(document.ref),
            "line_count": len(document.lines),
        })
        return model.to_dto()

    def update_ordering_document_status(
        self, ref: OrderingDocumentRef, status: OrderingStatus
    ) -> None:
        with self._operation("update_ordering_document_status", commit=True):
            model = self._ordering_model(ref)
            if model is None:
                raise PersistenceError(
                    "update_ordering_document_status", f"ordering document {ref} not found"
                )
            model.status = status.value
            model.touch(self._actor_id)
        logger.info("ordering_document_status_updated", extra={
            "document": str(ref),
            "status": status.value,
        })

    # ------------------------------------------------------------------
    # Receipt notes
    # ------------------------------------------------------------------

    def list_active_receipt_notes(self, ref: OrderingDocumentRef) -> list[ReceiptNote]:
        with self._operation("list_active_receipt_notes"):
            models = self._session.execute(
                select(ReceiptNoteModel).where(
                    func.lower(ReceiptNoteModel.document_ref) == ref.document_id.lower(),
                    ReceiptNoteModel.document_kind == ref.kind.value,
                    ReceiptNoteModel.is_active.is_(True),
                )
            ).scalars().all()
            return [m.to_dto() for m in models]

    def create_receipt_note(self, receipt_note: ReceiptNote) -> ReceiptNote:
        with self._operation("create_receipt_note", commit=True):
            model = ReceiptNoteModel.from_dto(receipt_note, self._actor_id)
            self._session.add(model)
        logger.info("receipt_note_created", extra={
            "receipt_note_id": str(model.id),
            "grn_number": model.grn_number,
            "document": str(receipt_note.ref),
        })
        return model.to_dto()

    def update_receipt_note(self, receipt_note: ReceiptNote) -> ReceiptNote:
        with self._operation("update_receipt_note", commit=True):
            model = self._session.get(ReceiptNoteModel, receipt_note.id)
            if model is None:
                raise PersistenceError(
                    "update_receipt_note", f"receipt note {receipt_note.id} not found"
                )
            model.apply_dto(receipt_note, self._actor_id)
            model.touch(self._actor_id)
        logger.info("receipt_note_updated", extra={
            "receipt_note_id": str(model.id),
            "grn_number": model.grn_number,
        })
        return model.to_dto()

    def list_receipt_numbers(
        self, corporation_id: str | None, exclude_id: UUID | None = None
    ) -> list[str]:
        with self._operation("list_receipt_numbers"):
            stmt = select(ReceiptNoteModel.grn_number).where(
                ReceiptNoteModel.grn_number.is_not(None)
            )
            if corporation_id is not None:
                stmt = stmt.where(ReceiptNoteModel.corporation_id == corporation_id)
            if exclude_id is not None:
                stmt = stmt.where(ReceiptNoteModel.id != exclude_id)
            return list(self._session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Return notes
    # ------------------------------------------------------------------

    def list_active_return_note_items(self, ref: OrderingDocumentRef) -> list[ReturnNoteItem]:
        with self._operation("list_active_return_note_items"):
            models = self._session.execute(
                select(ReturnNoteItemModel)
                .join(ReturnNoteModel, ReturnNoteModel.id == ReturnNoteItemModel.return_note_id)
                .where(
                    func.lower(ReturnNoteItemModel.document_ref) == ref.document_id.lower(),
                    ReturnNoteItemModel.document_kind == ref.kind.value,
                    ReturnNoteItemModel.is_active.is_(True),
                    ReturnNoteModel.is_active.is_(True),
                )
                .execution_options(populate_existing=True)
            ).scalars().all()
            return [m.to_dto() for m in models]

    def list_return_note_items(self, return_note_id: UUID) -> list[ReturnNoteItem]:
        with self._operation("list_return_note_items"):
            models = self._session.execute(
                select(ReturnNoteItemModel).where(
                    ReturnNoteItemModel.return_note_id == return_note_id
                )
                .execution_options(populate_existing=True)
            ).scalars().all()
            return [m.to_dto() for m in models]

    def create_return_note(self, return_note: ReturnNote) -> ReturnNote:
        with self._operation("create_return_note", commit=True):
            model = ReturnNoteModel.from_dto(return_note, self._actor_id)
            self._session.add(model)
            self._session.flush()
            self._write_items(model.id, return_note)
        logger.info("return_note_created", extra={
            "return_note_id": str(model.id),
            "return_number": model.return_number,
            "item_count": len(return_note.items),
        })
        return model.to_dto(items=tuple(self.list_return_note_items(model.id)))

    def update_return_note(self, return_note: ReturnNote) -> ReturnNote:
        with self._operation("update_return_note", commit=True):
            model = self._session.get(ReturnNoteModel, return_note.id)
            if model is None:
                raise PersistenceError(
                    "update_return_note", f"return note {return_note.id} not found"
                )
            model.apply_dto(return_note)
            model.touch(self._actor_id)
            self._session.flush()
            self._write_items(model.id, return_note)
        logger.info("return_note_updated", extra={
            "return_note_id": str(model.id),
            "item_count": len(return_note.items),
        })
        return model.to_dto(items=tuple(self.list_return_note_items(model.id)))

    def _write_items(self, return_note_id: UUID, return_note: ReturnNote) -> None:
        existing = self._session.execute(
            select(ReturnNoteItemModel).where(ReturnNoteItemModel.return_note_id == return_note_id)
        ).scalars().all()
        plan = plan_return_item_writes(
            return_note_id=return_note_id,
            ref=return_note.ref,
            items=return_note.items,
            existing_items=[m.to_dto() for m in existing],
        )
        self._execute_plan(plan)

    def write_return_note_items(self, plan: ReturnItemWritePlan) -> None:
        with self._operation("write_return_note_items", commit=True):
            self._execute_plan(plan)

    def delete_return_note_items(self, return_note_id: UUID) -> None:
        with self._operation("delete_return_note_items", commit=True):
            self._delete_items(return_note_id)

    def _delete_items(self, return_note_id: UUID) -> None:
        table = ReturnNoteItemModel.__table__
        self._session.execute(delete(table).where(table.c.return_note_id == return_note_id))
        logger.info("return_note_items_deleted", extra={"return_note_id": str(return_note_id)})

    def _execute_plan(self, plan: ReturnItemWritePlan) -> None:
        if plan.action is WriteAction.DELETE_ALL:
            self._delete_items(plan.return_note_id)
            return
        if not plan.rows:
            return

        table = ReturnNoteItemModel.__table__
        insert = postgresql.insert if self._session.get_bind().dialect.name == "postgresql" else sqlite.insert
        stmt = insert(table)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={
                **{name: stmt.excluded[name] for name in _UPSERT_UPDATE_COLUMNS},
                "updated_at": func.now(),
            },
        )
        self._session.execute(stmt, [self._bind_row(row) for row in plan.rows])
        logger.info("return_note_items_upserted", extra={
            "return_note_id": str(plan.return_note_id),
            "update_count": plan.update_count,
            "insert_count": plan.insert_count,
        })

    def _bind_row(self, row: dict[str, Any]) -> dict[str, Any]:
        """Executable row: new rows get an id here, at write time."""
        is_update = "id" in row
        return {
            **row,
            "id": row["id"] if is_update else uuid4(),
            "created_by_id": self._actor_id,
            "updated_by_id": self._actor_id if is_update else None,
        }

    def list_return_numbers(
        self, corporation_id: str | None, exclude_id: UUID | None = None
    ) -> list[str]:
        with self._operation("list_return_numbers"):
            stmt = select(ReturnNoteModel.return_number).where(
                ReturnNoteModel.return_number.is_not(None)
            )
            if corporation_id is not None:
                stmt = stmt.where(ReturnNoteModel.corporation_id == corporation_id)
            if exclude_id is not None:
                stmt = stmt.where(ReturnNoteModel.id != exclude_id)
            return list(self._session.execute(stmt).scalars().all())
