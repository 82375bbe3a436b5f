"""Distribution models — epochs, receipts, allocations and distributions.

All monetary values are GrainAmounts. No floats in finance.

Invariants enforced by these models:
- An epoch is a half-open interval [start_ms, end_ms) with start < end.
- An allocation's receipts name each identity at most once.
- A distribution covers exactly one epoch and is immutable once built.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from credgrain.models.grain import GrainAmount, total
from credgrain.models.identity import IdentityId


TimestampMs = int

WEEK_MS = 7 * 24 * 60 * 60 * 1000


class AllocationPolicyType(str, enum.Enum):
    """Which clause of the distribution policy produced an allocation."""
    IMMEDIATE = "IMMEDIATE"
    BALANCED = "BALANCED"


@dataclass(frozen=True, order=True)
class Epoch:
    """A half-open time interval that is the unit of distribution scheduling."""
    start_ms: TimestampMs
    end_ms: TimestampMs

    def __post_init__(self) -> None:
        if self.end_ms <= self.start_ms:
            raise ValueError(
                f"Epoch must end after it starts: [{self.start_ms}, {self.end_ms})"
            )

    def is_completed(self, now_ms: TimestampMs) -> bool:
        return self.end_ms <= now_ms

    def to_dict(self) -> dict[str, int]:
        return {"startTimeMs": self.start_ms, "endTimeMs": self.end_ms}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Epoch:
        return cls(start_ms=int(data["startTimeMs"]), end_ms=int(data["endTimeMs"]))

    @classmethod
    def week_starting(cls, start_ms: TimestampMs) -> Epoch:
        return cls(start_ms=start_ms, end_ms=start_ms + WEEK_MS)


@dataclass(frozen=True)
class Receipt:
    """One recipient's share within an allocation."""
    identity_id: IdentityId
    amount: GrainAmount

    def to_dict(self) -> dict[str, str]:
        return {"id": self.identity_id, "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Receipt:
        return cls(
            identity_id=data["id"],
            amount=GrainAmount.from_string(data["amount"]),
        )


@dataclass(frozen=True)
class Allocation:
    """One policy clause's payout within a distribution."""
    allocation_id: str
    policy: AllocationPolicyType
    budget: GrainAmount
    receipts: tuple[Receipt, ...]

    def __post_init__(self) -> None:
        seen: set[IdentityId] = set()
        for receipt in self.receipts:
            if receipt.identity_id in seen:
                raise ValueError(
                    f"Allocation {self.allocation_id} pays "
                    f"{receipt.identity_id} more than once"
                )
            seen.add(receipt.identity_id)
        if self.total() > self.budget:
            raise ValueError(
                f"Allocation {self.allocation_id} pays {self.total()} "
                f"which exceeds its budget {self.budget}"
            )

    def total(self) -> GrainAmount:
        return total(r.amount for r in self.receipts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.allocation_id,
            "policy": {
                "policyType": self.policy.value,
                "budget": str(self.budget),
            },
            "receipts": [r.to_dict() for r in self.receipts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Allocation:
        return cls(
            allocation_id=data["id"],
            policy=AllocationPolicyType(data["policy"]["policyType"]),
            budget=GrainAmount.from_string(data["policy"]["budget"]),
            receipts=tuple(Receipt.from_dict(r) for r in data["receipts"]),
        )


@dataclass(frozen=True)
class Distribution:
    """One atomic unit of currency issuance for one completed epoch."""
    distribution_id: str
    epoch: Epoch
    created_ms: TimestampMs
    allocations: tuple[Allocation, ...]

    def total(self) -> GrainAmount:
        return total(a.total() for a in self.allocations)

    def recipients(self) -> set[IdentityId]:
        return {r.identity_id for a in self.allocations for r in a.receipts}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.distribution_id,
            "epoch": self.epoch.to_dict(),
            "createdMs": self.created_ms,
            "allocations": [a.to_dict() for a in self.allocations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Distribution:
        return cls(
            distribution_id=data["id"],
            epoch=Epoch.from_dict(data["epoch"]),
            created_ms=int(data["createdMs"]),
            allocations=tuple(Allocation.from_dict(a) for a in data["allocations"]),
        )
