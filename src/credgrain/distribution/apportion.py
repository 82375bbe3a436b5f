"""Largest-remainder apportionment of an integer budget.

Given a budget of base units and non-negative weights, each recipient
first receives the floor of its exact proportional share. The units left
over (always fewer than the number of recipients) go one at a time to
the recipients with the largest fractional remainders, ties broken by
key order. The shares therefore sum to exactly the budget.

Weights are converted to exact rationals before any arithmetic, so the
result depends only on the weight values, never on float rounding or
on the order the weights were supplied in.
"""

from __future__ import annotations

from decimal import Decimal
from fractions import Fraction
from typing import Mapping, TypeVar, Union


K = TypeVar("K")

Weight = Union[int, float, Decimal, Fraction]


def _exact(weight: Weight) -> Fraction:
    value = Fraction(weight)
    if value < 0:
        raise ValueError(f"Weights must be non-negative, got {weight}")
    return value


def largest_remainder(budget: int, weights: Mapping[K, Weight]) -> dict[K, int]:
    """Split `budget` base units across `weights` with no leakage.

    Returns a share for every key with a positive weight. If no weight is
    positive the result is empty and the budget is left undistributed.

        largest_remainder(100, {"a": 1, "b": 1, "c": 1})
        == {"a": 34, "b": 33, "c": 33}
    """
    if budget < 0:
        raise ValueError(f"Budget must be non-negative, got {budget}")

    exact = {key: _exact(w) for key, w in weights.items()}
    positive = sorted(key for key, w in exact.items() if w > 0)
    if not positive:
        return {}

    total_weight = sum(exact[key] for key in positive)
    shares: dict[K, int] = {}
    remainders: list[tuple[Fraction, K]] = []
    for key in positive:
        quota = budget * exact[key] / total_weight
        floor = quota.numerator // quota.denominator
        shares[key] = floor
        remainders.append((quota - floor, key))

    leftover = budget - sum(shares.values())
    # Largest remainder first; equal remainders fall back to key order.
    remainders.sort(key=lambda item: -item[0])
    for _, key in remainders[:leftover]:
        shares[key] += 1

    return shares
