"""
Module: procurement_kernel.db.base
Responsibility: Declarative base for the receiving tables.  Fixes how ids,
    quantities, money and upstream references are stored so the models in
    ``procurement_modules.receiving.orm`` only spell out what differs.
Architecture position: Kernel > DB.  Imported by ORM code only.  MUST NOT
    import from domain/ or outer layers.

Invariants enforced:
    - Ids are uuid4 values stored as String(36) on both SQLite and
      PostgreSQL.  Malformed id strings fail at bind time, not in a query.
    - Quantities and money map to Numeric(38, 9) and always load as Decimal.
    - Upstream references (items, corporations, projects) default to
      String(100) with no foreign key.
    - Every row records the actor that created it and the last actor that
      changed it (``TrackedBase.touch``).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, UUID):
            value = UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return UUID(value)


class Base(DeclarativeBase):
    """Every receiving model gets a uuid4 ``id`` and the column types below."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9, asdecimal=True),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        str: String(100),
        bool: Boolean,
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns.

    ``created_at``/``updated_at`` come from the database clock;
    ``created_by_id`` is required on insert and ``updated_by_id`` stays
    NULL until the row is first changed.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def touch(self, actor_id: UUID) -> None:
        """Record ``actor_id`` as the last actor to change this row."""
        self.updated_by_id = actor_id
