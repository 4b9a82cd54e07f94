"""
Charge and tax configuration attached to an ordering document.

Four charge types (freight, packing, custom duties, other) each carry a
percentage of the item total and a taxable flag. Two tax percentages are
applied side by side to the same tax base.

Percentages are validated here, at construction, so the breakdown
calculator can stay a pure function that never sees a negative rate.
Missing percentages default to 0; a zero-rate charge is still part of the
breakdown, it just contributes nothing.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from procurement_kernel.domain.values import ZERO, to_decimal
from procurement_kernel.exceptions import NegativePercentageError


class ChargeType(str, Enum):
    """Document-level charges applied on top of the item total."""

    FREIGHT = "freight"
    PACKING = "packing"
    CUSTOM_DUTIES = "custom_duties"
    OTHER = "other"


# Charge types that the procurement desk configures as taxable out of the box.
DEFAULT_TAXABLE_CHARGES: frozenset[ChargeType] = frozenset(
    {ChargeType.FREIGHT, ChargeType.PACKING}
)


@dataclass(frozen=True)
class ChargeConfig:
    """Percentage and taxability of one charge type."""

    percentage: Decimal = ZERO
    taxable: bool = False

    def __post_init__(self) -> None:
        pct = to_decimal(self.percentage, "percentage")
        if pct < ZERO:
            raise NegativePercentageError("charge.percentage", pct)
        object.__setattr__(self, "percentage", pct)


@dataclass(frozen=True)
class ChargeTaxConfig:
    """
    Full charge/tax configuration of an ordering document.

    Guarantees:
        - ``charges`` has an entry for every ChargeType.
        - All percentages are non-negative Decimals.
    """

    charges: Mapping[ChargeType, ChargeConfig] = field(default_factory=dict)
    tax1_percentage: Decimal = ZERO
    tax2_percentage: Decimal = ZERO

    def __post_init__(self) -> None:
        complete = {
            charge_type: self.charges.get(charge_type, ChargeConfig())
            for charge_type in ChargeType
        }
        object.__setattr__(self, "charges", complete)
        for name in ("tax1_percentage", "tax2_percentage"):
            pct = to_decimal(getattr(self, name), name)
            if pct < ZERO:
                raise NegativePercentageError(name, pct)
            object.__setattr__(self, name, pct)

    @classmethod
    def from_percentages(
        cls,
        *,
        freight: Decimal | str | int | None = None,
        packing: Decimal | str | int | None = None,
        custom_duties: Decimal | str | int | None = None,
        other: Decimal | str | int | None = None,
        tax1: Decimal | str | int | None = None,
        tax2: Decimal | str | int | None = None,
        taxable: frozenset[ChargeType] | set[ChargeType] = DEFAULT_TAXABLE_CHARGES,
    ) -> ChargeTaxConfig:
        """Build a config from bare percentages; ``None`` means 0."""
        raw = {
            ChargeType.FREIGHT: freight,
            ChargeType.PACKING: packing,
            ChargeType.CUSTOM_DUTIES: custom_duties,
            ChargeType.OTHER: other,
        }
        return cls(
            charges={
                charge_type: ChargeConfig(
                    percentage=to_decimal(pct, charge_type.value),
                    taxable=charge_type in taxable,
                )
                for charge_type, pct in raw.items()
            },
            tax1_percentage=to_decimal(tax1, "tax1_percentage"),
            tax2_percentage=to_decimal(tax2, "tax2_percentage"),
        )

    @classmethod
    def empty(cls) -> ChargeTaxConfig:
        """All charges and taxes at 0."""
        return cls()

    @staticmethod
    def default_taxability() -> dict[ChargeType, bool]:
        """Taxable flag per charge type as configured out of the box."""
        return {ct: ct in DEFAULT_TAXABLE_CHARGES for ct in ChargeType}

    def charge(self, charge_type: ChargeType) -> ChargeConfig:
        return self.charges[charge_type]

    @property
    def taxable_charge_types(self) -> frozenset[ChargeType]:
        return frozenset(ct for ct, cfg in self.charges.items() if cfg.taxable)
