"""
Pure domain layer.

Canonical records and value objects with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from procurement_kernel.domain.charges import (
    DEFAULT_TAXABLE_CHARGES,
    ChargeConfig,
    ChargeTaxConfig,
    ChargeType,
)
from procurement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
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
from procurement_kernel.domain.values import (
    MONEY_PLACES,
    Money,
    clamp_non_negative,
    percent_of,
    round_money,
    to_decimal,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Values
    "Money",
    "MONEY_PLACES",
    "round_money",
    "percent_of",
    "to_decimal",
    "clamp_non_negative",
    # Charges
    "ChargeType",
    "ChargeConfig",
    "ChargeTaxConfig",
    "DEFAULT_TAXABLE_CHARGES",
    # Documents
    "DocumentKind",
    "OrderingStatus",
    "ReceiptStatus",
    "ReturnStatus",
    "OrderingDocumentRef",
    "OrderedLineItem",
    "OrderingDocument",
    "ReceiptNote",
    "ReceiptNoteItem",
    "ReturnNote",
    "ReturnNoteItem",
]
