"""
Receipt-note and return-note numbering.

Numbers are per corporation: ``GRN-000001``, ``GRN-000002``... for receipt
notes and ``RTN-1``, ``RTN-2``... for return notes. The next number is the
highest existing sequence plus one; numbers that do not follow the pattern
are ignored. A number typed in by the user is kept unless another note of
the same corporation already carries it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from procurement_kernel.logging_config import get_logger
from procurement_modules.receiving.config import ReceivingConfig

logger = get_logger("modules.receiving.numbering")


@dataclass(frozen=True)
class NumberFormat:
    """Prefix plus zero-padded sequence (width 0 means no padding)."""

    prefix: str
    width: int = 0

    @property
    def pattern(self) -> re.Pattern[str]:
        return re.compile(rf"^{re.escape(self.prefix)}(\d+)$", re.IGNORECASE)

    def sequence_of(self, number: str | None) -> int | None:
        if not number:
            return None
        match = self.pattern.match(number.strip())
        return int(match.group(1)) if match else None

    def format(self, sequence: int) -> str:
        return f"{self.prefix}{str(sequence).zfill(self.width)}"

    def next_number(self, existing: Iterable[str | None]) -> str:
        highest = 0
        for number in existing:
            seq = self.sequence_of(number)
            if seq is not None and seq > highest:
                highest = seq
        return self.format(highest + 1)


def receipt_number_format(config: ReceivingConfig) -> NumberFormat:
    return NumberFormat(config.receipt_number_prefix, config.receipt_number_width)


def return_number_format(config: ReceivingConfig) -> NumberFormat:
    return NumberFormat(config.return_number_prefix, config.return_number_width)


def assign_number(
    fmt: NumberFormat,
    requested: str | None,
    numbers_in_use: Iterable[str | None],
) -> str:
    """
    Keep ``requested`` if it is free, otherwise generate the next number.

    ``numbers_in_use`` are the numbers of the corporation's OTHER notes (the
    note being saved must be excluded by the caller).
    """
    in_use = [n for n in numbers_in_use if n]
    requested = (requested or "").strip() or None
    if requested is not None:
        taken = {n.strip().casefold() for n in in_use}
        if requested.casefold() not in taken:
            return requested
        logger.info("document_number_conflict", extra={
            "requested": requested,
            "prefix": fmt.prefix,
        })
    return fmt.next_number(in_use)
