"""
Module: procurement_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    receiving calculators. This is the import surface for
    procurement_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel (and sibling engine modules).
    MUST NOT import procurement_modules.

Invariants enforced:
    - Decimal-only arithmetic; floats are converted at the kernel boundary.
    - Determinism: identical inputs always produce identical outputs.
    - Fulfillment is recomputed from the notes handed in on every call.

Usage:
    from procurement_engines import compute_breakdown, detect_shortfalls
    from procurement_engines import FulfillmentLedger, reconcile_remaining_shortfall
"""

from procurement_kernel.logging_config import get_logger

logger = get_logger("engines")

from procurement_engines.breakdown import (
    BreakdownCalculator,
    ChargeLine,
    FinancialBreakdown,
    compute_breakdown,
)
from procurement_engines.fulfillment import (
    FulfillmentLedger,
    ReceivedTally,
    leftover_quantity,
    same_document,
    tally_received,
)
from procurement_engines.item_identity import (
    ITEM_KEY_CHAIN,
    ReconciliationInconsistency,
    base_item_ref,
    normalize_item_key,
    primary_item_ref,
    resolve_item_key,
)
from procurement_engines.line_allocation import (
    LineAllocation,
    LineAllocationResult,
    LineTotal,
    allocate_line_item_totals,
)
from procurement_engines.receipt_pricing import PricedReceiptNote, price_receipt_note
from procurement_engines.reconciliation import (
    ReconciledShortfall,
    ReturnItemWritePlan,
    WriteAction,
    build_return_note_draft,
    plan_return_item_writes,
    reconcile_remaining_shortfall,
    validate_return_quantities,
)
from procurement_engines.shortfall import (
    ShortfallDetection,
    ShortfallItem,
    detect_shortfalls,
)
from procurement_engines.tracer import traced_engine

__all__ = [
    # Breakdown
    "BreakdownCalculator",
    "ChargeLine",
    "FinancialBreakdown",
    "compute_breakdown",
    # Allocation
    "LineAllocation",
    "LineAllocationResult",
    "LineTotal",
    "allocate_line_item_totals",
    # Receipt pricing
    "PricedReceiptNote",
    "price_receipt_note",
    # Item identity
    "ITEM_KEY_CHAIN",
    "ReconciliationInconsistency",
    "base_item_ref",
    "normalize_item_key",
    "primary_item_ref",
    "resolve_item_key",
    # Fulfillment
    "FulfillmentLedger",
    "ReceivedTally",
    "leftover_quantity",
    "same_document",
    "tally_received",
    # Shortfall
    "ShortfallDetection",
    "ShortfallItem",
    "detect_shortfalls",
    # Reconciliation
    "ReconciledShortfall",
    "ReturnItemWritePlan",
    "WriteAction",
    "build_return_note_draft",
    "plan_return_item_writes",
    "reconcile_remaining_shortfall",
    "validate_return_quantities",
    # Tracing
    "traced_engine",
]
