"""
Typed Exception Hierarchy for the procurement kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Receiving and returns touch money and stock at the same time. Callers need
to tell "the user typed a negative quantity" apart from "the database went
away after the receipt note was written", without parsing message strings.

Every exception here:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

Example:
    try:
        breakdown = compute_breakdown(item_total=total, config=config)
    except NegativePercentageError as e:
        return {"error": e.code, "field": e.field, "value": str(e.value)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProcurementError (base)
    |
    +-- ValidationError
    |   +-- NegativeAmountError
    |   +-- NegativePercentageError
    |   +-- InvalidAmountError
    |   +-- InvalidQuantityError
    |   +-- OverReturnError
    |   +-- DocumentMismatchError
    |   +-- UnknownDocumentError
    |   +-- ShortfallDecisionError
    |
    +-- PersistenceError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                   | When Raised
----------------|------------------------|------------------------------------------
Validation      | NEGATIVE_AMOUNT        | Item total / unit price below zero
                | NEGATIVE_PERCENTAGE    | Charge or tax percentage below zero
                | INVALID_AMOUNT         | Text that is not a number
                | INVALID_QUANTITY       | Negative or non-numeric quantity
                | OVER_RETURN            | Return exceeds the remaining shortfall
                | DOCUMENT_MISMATCH      | Note references another ordering document
                | UNKNOWN_DOCUMENT       | Ordering document not in the store
                | INVALID_SHORTFALL_DECISION | Shortfall callback raised or answered badly
----------------|------------------------|------------------------------------------
Persistence     | PERSISTENCE_ERROR      | Store call failed (stage + operation set)
----------------|------------------------|------------------------------------------
Configuration   | CONFIGURATION_ERROR    | Unknown or malformed config keys

Soft problems (an item whose identity cannot be resolved) are NOT exceptions;
see ``procurement_engines.item_identity.ReconciliationInconsistency``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class ProcurementError(Exception):
    """
    Base exception for all procurement errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PROCUREMENT_ERROR"


# Validation exceptions


class ValidationError(ProcurementError):
    """Input rejected before any computation or persistence took place."""

    code: str = "VALIDATION_ERROR"


class NegativeAmountError(ValidationError):
    """A monetary input that must be non-negative was negative."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, field: str, value: Decimal):
        self.field = field
        self.value = value
        super().__init__(f"{field} cannot be negative: {value}")


class NegativePercentageError(ValidationError):
    """A charge or tax percentage was negative."""

    code: str = "NEGATIVE_PERCENTAGE"

    def __init__(self, field: str, value: Decimal):
        self.field = field
        self.value = value
        super().__init__(f"Percentage {field} cannot be negative: {value}")


class InvalidAmountError(ValidationError):
    """A value could not be interpreted as a decimal number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, raw_value: Any):
        self.field = field
        self.raw_value = raw_value
        super().__init__(f"Invalid numeric value for {field}: {raw_value!r}")


class InvalidQuantityError(ValidationError):
    """A quantity was negative (or zero where a positive value is required)."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: Any, reason: str = "cannot be negative"):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"{field} {reason}: {value}")


class OverReturnError(ValidationError):
    """
    A return quantity exceeds what is still outstanding for the item.

    Raised at the boundary instead of clamping, so the caller can show the
    allowance next to the offending row.
    """

    code: str = "OVER_RETURN"

    def __init__(self, item_key: str | None, requested: Decimal, allowed: Decimal):
        self.item_key = item_key
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Return quantity {requested} for item {item_key} exceeds "
            f"remaining shortfall {allowed}"
        )


class DocumentMismatchError(ValidationError):
    """A note was priced or reconciled against a different ordering document."""

    code: str = "DOCUMENT_MISMATCH"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Note references ordering document {actual}, expected {expected}"
        )


class UnknownDocumentError(ValidationError):
    """A note references an ordering document the store does not hold."""

    code: str = "UNKNOWN_DOCUMENT"

    def __init__(self, document: str):
        self.document = document
        super().__init__(f"Ordering document {document} not found")


class ShortfallDecisionError(ValidationError):
    """The shortfall callback failed or did not answer with a decision."""

    code: str = "INVALID_SHORTFALL_DECISION"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Shortfall decision rejected: {detail}")


# Persistence exceptions


class PersistenceError(ProcurementError):
    """
    The external store failed.

    ``stage`` is filled in by the save orchestration ("receipt" or
    "return-note") so callers know which of the independently committed
    writes did not happen. ``operation`` names the store call.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(
        self,
        operation: str,
        detail: str,
        stage: str | None = None,
    ):
        self.operation = operation
        self.detail = detail
        self.stage = stage
        prefix = f"[{stage}] " if stage else ""
        super().__init__(f"{prefix}{operation} failed: {detail}")

    def with_stage(self, stage: str) -> PersistenceError:
        """Return a copy of this error scoped to a save stage."""
        scoped = PersistenceError(self.operation, self.detail, stage=stage)
        scoped.__cause__ = self.__cause__ or self
        return scoped


# Configuration exceptions


class ConfigurationError(ProcurementError):
    """Receiving configuration could not be loaded."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, keys: tuple[str, ...] = ()):
        self.keys = keys
        super().__init__(message)
