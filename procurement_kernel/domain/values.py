"""
Values -- Immutable, self-validating monetary primitives.

Responsibility:
    Provides the fixed-precision decimal arithmetic used by every calculator
    in the receiving engine: the Money value object, the two-place rounding
    helper, and tolerant Decimal conversion for ingestion.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module and by all engines.

Invariants enforced:
    - All monetary amounts are Decimal, never float. Floats handed in at the
      boundary are converted through ``str`` so ``0.1`` stays ``0.1``.
    - Rounding is ROUND_HALF_UP, which for Decimal means half away from zero
      (``2.345 -> 2.35``, ``-2.345 -> -2.35``).
    - Monetary sub-amounts are rounded to MONEY_PLACES where they are produced.

Failure modes:
    - InvalidAmountError when a value cannot be parsed as a number.

Non-goals:
    - No currency. Every document in the receiving flow is single-currency;
      conversion is outside the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from procurement_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 2
MONEY_PLACES = Decimal(10) ** -MONEY_DECIMAL_PLACES
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str = "value", default: Decimal = ZERO) -> Decimal:
    """
    Convert a loosely typed value to Decimal.

    ``None`` and blank strings map to ``default``. Booleans are rejected
    (``True`` is not a quantity).

    Raises:
        InvalidAmountError: if the value is not numeric.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise InvalidAmountError(field, value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        text = str(value).strip()
        if not text:
            return default
        try:
            result = Decimal(text)
        except InvalidOperation as e:
            raise InvalidAmountError(field, value) from e
    else:
        raise InvalidAmountError(field, value)
    if not result.is_finite():
        raise InvalidAmountError(field, value)
    return result


def round_money(value: Decimal | int | str) -> Decimal:
    """Round to two places, half away from zero."""
    if not isinstance(value, Decimal):
        value = to_decimal(value)
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """``amount * percentage / 100``, rounded to money places."""
    return round_money(amount * percentage / HUNDRED)


def clamp_non_negative(value: Decimal) -> Decimal:
    """``max(0, value)`` -- used for leftover and shortfall quantities."""
    return value if value > ZERO else ZERO


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Wraps a Decimal amount. Arithmetic returns new instances; nothing
        rounds implicitly -- call ``.round()`` where a sub-amount is produced.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - amount is always a Decimal (never float)
    """

    amount: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", to_decimal(self.amount, "amount"))

    @classmethod
    def of(cls, amount: Decimal | str | int) -> Money:
        """Factory accepting Decimal, str or int."""
        return cls(amount=to_decimal(amount, "amount"))

    @classmethod
    def zero(cls) -> Money:
        return cls(amount=ZERO)

    @property
    def is_zero(self) -> bool:
        return self.amount == ZERO

    @property
    def is_positive(self) -> bool:
        return self.amount > ZERO

    @property
    def is_negative(self) -> bool:
        return self.amount < ZERO

    def round(self) -> Money:
        """Round to MONEY_PLACES (half away from zero)."""
        return Money(amount=round_money(self.amount))

    def percent(self, percentage: Decimal) -> Money:
        """Rounded ``percentage`` percent of this amount."""
        return Money(amount=percent_of(self.amount, percentage))

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(amount=self.amount + other.amount)

    def __radd__(self, other: Any) -> Money:
        # Lets sum() start from the int 0
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(amount=self.amount - other.amount)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount))

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, (int, str)):
            factor = Decimal(str(factor))
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount >= other.amount

    def __str__(self) -> str:
        return str(self.amount)

    def __repr__(self) -> str:
        return f"Money({self.amount!r})"
