"""Grain amounts — fixed-point currency with exact integer arithmetic.

A GrainAmount is a non-negative integer count of base units. One whole
Grain is 10**DECIMAL_PRECISION base units. Amounts are never represented
as floats; every operation is exact.

Amounts are serialized as decimal strings of base units so that the
persisted ledger round-trips without any loss of precision.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable


DECIMAL_PRECISION = 18

_BASE_UNITS_PATTERN = re.compile(r"^[0-9]+$")


class GrainUnderflowError(ValueError):
    """Raised when a subtraction would produce a negative amount."""


@dataclass(frozen=True, order=True)
class GrainAmount:
    """An immutable, non-negative quantity of Grain in base units."""
    base_units: int

    def __post_init__(self) -> None:
        if isinstance(self.base_units, bool) or not isinstance(self.base_units, int):
            raise TypeError(
                f"GrainAmount requires an integer number of base units, "
                f"got {type(self.base_units).__name__}"
            )
        if self.base_units < 0:
            raise GrainUnderflowError(
                f"GrainAmount cannot be negative, got {self.base_units}"
            )

    def __add__(self, other: GrainAmount) -> GrainAmount:
        return add(self, other)

    def __sub__(self, other: GrainAmount) -> GrainAmount:
        return sub(self, other)

    def __bool__(self) -> bool:
        return self.base_units != 0

    def __str__(self) -> str:
        return str(self.base_units)

    @staticmethod
    def from_string(value: str) -> GrainAmount:
        """Parse a decimal string of base units (the serialized form)."""
        if not isinstance(value, str) or not _BASE_UNITS_PATTERN.match(value):
            raise ValueError(f"Invalid Grain amount: {value!r}")
        return GrainAmount(int(value))

    @staticmethod
    def from_integer(whole_grain: int) -> GrainAmount:
        """Build an amount from a whole number of Grain."""
        if isinstance(whole_grain, bool) or not isinstance(whole_grain, int):
            raise TypeError(f"Expected an integer number of Grain, got {whole_grain!r}")
        return GrainAmount(whole_grain * ONE.base_units)


ZERO = GrainAmount(0)
ONE = GrainAmount(10 ** DECIMAL_PRECISION)


def zero() -> GrainAmount:
    return ZERO


def add(a: GrainAmount, b: GrainAmount) -> GrainAmount:
    return GrainAmount(a.base_units + b.base_units)


def sub(a: GrainAmount, b: GrainAmount) -> GrainAmount:
    """Subtract b from a. Raises GrainUnderflowError if b > a."""
    if b.base_units > a.base_units:
        raise GrainUnderflowError(
            f"Cannot subtract {b.base_units} from {a.base_units} base units"
        )
    return GrainAmount(a.base_units - b.base_units)


def total(amounts: Iterable[GrainAmount]) -> GrainAmount:
    result = 0
    for amount in amounts:
        result += amount.base_units
    return GrainAmount(result)


def format(
    amount: GrainAmount,
    decimals: int = DECIMAL_PRECISION,
    suffix: str = "",
) -> str:
    """Render an amount with a fixed number of decimal places.

    Digits beyond `decimals` are truncated, never rounded, so the output
    never claims more Grain than exists. No thousands separators.

        format(GrainAmount.from_integer(50), 2, "g") == "50.00g"
    """
    if decimals < 0 or decimals > DECIMAL_PRECISION:
        raise ValueError(
            f"decimals must be between 0 and {DECIMAL_PRECISION}, got {decimals}"
        )
    whole, fraction = divmod(amount.base_units, ONE.base_units)
    text = str(whole)
    if decimals > 0:
        digits = str(fraction).rjust(DECIMAL_PRECISION, "0")[:decimals]
        text = f"{text}.{digits}"
    return f"{text}{suffix}"
