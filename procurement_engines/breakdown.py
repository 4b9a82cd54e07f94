"""
Module: procurement_engines.breakdown
Responsibility:
    Turn an item subtotal plus a charge/tax configuration into a fully
    itemized monetary breakdown: four charges, the taxable base, two taxes
    and the grand total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel.

Algorithm:
    1. charge amount = item_total * percentage / 100, per charge type
    2. charges_total = sum of the four charge amounts
    3. taxable_charges = sum of the charges flagged taxable
    4. tax_base = item_total + taxable_charges
    5. tax1 / tax2 = tax_base * percentage / 100 (same base, not compounded)
    6. tax_total = tax1 + tax2
    7. grand_total = item_total + charges_total + tax_total

Invariants enforced:
    - Every sub-amount is rounded to 2 places (half away from zero) where it
      is produced, and every total is the exact sum of rounded parts, so
      ``grand_total == item_total + charges_total + tax_total`` holds exactly.
    - Taxability is read per charge type from the configuration; nothing is
      hard-wired to freight and packing.
    - item_total == 0 gives an all-zero breakdown, not an error.

Failure modes:
    - NegativeAmountError when item_total is negative, raised before any
      arithmetic. Negative percentages never get this far: ChargeTaxConfig
      rejects them at construction.

Usage:
    from procurement_engines.breakdown import compute_breakdown
    from procurement_kernel.domain import ChargeTaxConfig, Money

    breakdown = compute_breakdown(
        item_total=Money.of("1000.00"),
        config=ChargeTaxConfig.from_percentages(freight="5", tax1="8"),
    )
    breakdown.grand_total  # Money('1134.00')
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.charges import ChargeTaxConfig, ChargeType
from procurement_kernel.domain.values import Money
from procurement_kernel.exceptions import NegativeAmountError
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.breakdown")


@dataclass(frozen=True)
class ChargeLine:
    """Computed amount for one charge type."""

    charge_type: ChargeType
    percentage: Decimal
    taxable: bool
    amount: Money


@dataclass(frozen=True)
class FinancialBreakdown:
    """
    Itemized total of an ordering document or receipt note.

    Contract:
        Derived value, never stored on its own; its amounts are copied onto
        the owning document.
    Guarantees:
        - ``grand_total == item_total + charges_total + tax_total``.
        - ``charges_total`` is the sum of the four charge amounts.
    """

    item_total: Money
    charges: tuple[ChargeLine, ...]
    charges_total: Money
    taxable_charges: Money
    tax_base: Money
    tax1_amount: Money
    tax2_amount: Money
    tax_total: Money
    grand_total: Money

    def charge_amount(self, charge_type: ChargeType) -> Money:
        for line in self.charges:
            if line.charge_type == charge_type:
                return line.amount
        return Money.zero()

    @property
    def freight_amount(self) -> Money:
        return self.charge_amount(ChargeType.FREIGHT)

    @property
    def packing_amount(self) -> Money:
        return self.charge_amount(ChargeType.PACKING)

    @property
    def custom_duties_amount(self) -> Money:
        return self.charge_amount(ChargeType.CUSTOM_DUTIES)

    @property
    def other_amount(self) -> Money:
        return self.charge_amount(ChargeType.OTHER)

    @property
    def per_charge(self) -> dict[ChargeType, Money]:
        return {line.charge_type: line.amount for line in self.charges}

    @property
    def per_tax(self) -> dict[str, Money]:
        return {"tax1": self.tax1_amount, "tax2": self.tax2_amount}


class BreakdownCalculator:
    """
    Compute financial breakdowns.

    Contract:
        Pure function over (item_total, config). No I/O, no clock.
    Non-goals:
        - Does not decide which configuration applies; callers pass the
          ordering document's config.
        - No currency handling.
    """

    @traced_engine("breakdown", "1.0", fingerprint_fields=("item_total", "config"))
    def compute(self, item_total: Money, config: ChargeTaxConfig) -> FinancialBreakdown:
        """
        Compute the breakdown for ``item_total`` under ``config``.

        Raises:
            NegativeAmountError: if item_total is negative.
        """
        t0 = time.monotonic()
        if item_total.is_negative:
            logger.warning("breakdown_rejected_negative_total", extra={
                "item_total": str(item_total.amount),
            })
            raise NegativeAmountError("item_total", item_total.amount)

        base = item_total.round()

        charges = tuple(
            ChargeLine(
                charge_type=charge_type,
                percentage=charge_cfg.percentage,
                taxable=charge_cfg.taxable,
                amount=base.percent(charge_cfg.percentage),
            )
            for charge_type, charge_cfg in (
                (ct, config.charge(ct)) for ct in ChargeType
            )
        )
        charges_total = sum((line.amount for line in charges), Money.zero())
        taxable_charges = sum(
            (line.amount for line in charges if line.taxable), Money.zero()
        )

        tax_base = base + taxable_charges
        tax1_amount = tax_base.percent(config.tax1_percentage)
        tax2_amount = tax_base.percent(config.tax2_percentage)
        tax_total = tax1_amount + tax2_amount

        grand_total = base + charges_total + tax_total

        result = FinancialBreakdown(
            item_total=base,
            charges=charges,
            charges_total=charges_total,
            taxable_charges=taxable_charges,
            tax_base=tax_base,
            tax1_amount=tax1_amount,
            tax2_amount=tax2_amount,
            tax_total=tax_total,
            grand_total=grand_total,
        )

        logger.debug("breakdown_computed", extra={
            "item_total": str(base.amount),
            "charges_total": str(charges_total.amount),
            "tax_base": str(tax_base.amount),
            "tax_total": str(tax_total.amount),
            "grand_total": str(grand_total.amount),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result


_calculator = BreakdownCalculator()


def compute_breakdown(item_total: Money, config: ChargeTaxConfig) -> FinancialBreakdown:
    """Module-level convenience wrapper around BreakdownCalculator.compute."""
    return _calculator.compute(item_total=item_total, config=config)
