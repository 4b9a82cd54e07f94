"""
Module: procurement_engines.line_allocation
Responsibility:
    Spread a document-level grand total (charges and taxes included) back
    over its line items, in proportion to each line's raw price x quantity.
    Used to fill ``grn_total_with_charges_and_taxes`` on receipt note items.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Formula:
    share_i = raw_total_i / item_total          (0 when item_total == 0)
    allocated_i = round(share_i * grand_total, 2)

Invariants enforced:
    - Results are recomputed from scratch on every call; nothing is patched.
    - With ``absorb_rounding=False`` (default) every line follows the formula
      exactly and the residual ``grand_total - sum(allocated)`` is reported.
      It is bounded by half a cent per line.
    - With ``absorb_rounding=True`` the residual is added to the last line
      with a non-zero share, so the allocated sum equals the grand total.
    - item_total == 0 allocates nothing.

Failure modes:
    - NegativeAmountError for a negative raw line total or grand total.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.values import ZERO, Money, round_money
from procurement_kernel.exceptions import NegativeAmountError
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.line_allocation")


@dataclass(frozen=True)
class LineTotal:
    """Input: one line's raw total (price x quantity, no charges/taxes)."""

    key: Hashable
    raw_total: Money


@dataclass(frozen=True)
class LineAllocation:
    """Output: one line's share of the grand total."""

    key: Hashable
    raw_total: Money
    share: Decimal
    total_with_charges_and_taxes: Money


@dataclass(frozen=True)
class LineAllocationResult:
    """
    All allocated lines, in input order.

    Guarantees:
        - ``allocated_total + rounding_residual == grand_total`` whenever
          item_total > 0.
    """

    grand_total: Money
    item_total: Money
    lines: tuple[LineAllocation, ...]
    allocated_total: Money
    rounding_residual: Money

    def for_key(self, key: Hashable) -> LineAllocation | None:
        for line in self.lines:
            if line.key == key:
                return line
        return None


@traced_engine("line_allocation", "1.0", fingerprint_fields=("grand_total", "lines"))
def allocate_line_item_totals(
    grand_total: Money,
    lines: Sequence[LineTotal],
    item_total: Money | None = None,
    absorb_rounding: bool = False,
) -> LineAllocationResult:
    """
    Allocate ``grand_total`` over ``lines`` by raw-total share.

    Args:
        grand_total: Document total with charges and taxes.
        lines: Raw line totals.
        item_total: Document raw item total; defaults to the sum of ``lines``.
        absorb_rounding: Put the rounding residual on the last non-zero line.
    """
    if grand_total.is_negative:
        raise NegativeAmountError("grand_total", grand_total.amount)
    for line in lines:
        if line.raw_total.is_negative:
            raise NegativeAmountError(f"raw_total[{line.key}]", line.raw_total.amount)

    if item_total is None:
        item_total = sum((line.raw_total for line in lines), Money.zero())

    allocations: list[LineAllocation] = []
    for line in lines:
        if item_total.is_zero:
            share = ZERO
        else:
            share = line.raw_total.amount / item_total.amount
        allocations.append(
            LineAllocation(
                key=line.key,
                raw_total=line.raw_total,
                share=share,
                total_with_charges_and_taxes=Money(round_money(share * grand_total.amount)),
            )
        )

    allocated_total = sum(
        (a.total_with_charges_and_taxes for a in allocations), Money.zero()
    )
    residual = Money.zero() if item_total.is_zero else grand_total - allocated_total

    if absorb_rounding and not residual.is_zero:
        target = _last_nonzero_index(allocations)
        if target is not None:
            line = allocations[target]
            allocations[target] = LineAllocation(
                key=line.key,
                raw_total=line.raw_total,
                share=line.share,
                total_with_charges_and_taxes=line.total_with_charges_and_taxes + residual,
            )
            logger.debug("line_allocation_residual_absorbed", extra={
                "line_key": str(line.key),
                "residual": str(residual.amount),
            })
            allocated_total = allocated_total + residual
            residual = Money.zero()

    logger.debug("line_allocation_completed", extra={
        "grand_total": str(grand_total.amount),
        "item_total": str(item_total.amount),
        "line_count": len(allocations),
        "allocated_total": str(allocated_total.amount),
        "rounding_residual": str(residual.amount),
    })

    return LineAllocationResult(
        grand_total=grand_total,
        item_total=item_total,
        lines=tuple(allocations),
        allocated_total=allocated_total,
        rounding_residual=residual,
    )


def _last_nonzero_index(allocations: Sequence[LineAllocation]) -> int | None:
    for i in range(len(allocations) - 1, -1, -1):
        if allocations[i].share != ZERO:
            return i
    return None
