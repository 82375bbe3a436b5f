"""Human-readable summaries of distributions for run reports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from credgrain.ledger.ledger import Ledger
from credgrain.models import grain as G
from credgrain.models.distribution import Allocation, Distribution
from credgrain.models.grain import GrainAmount
from credgrain.models.identity import IdentityId
from credgrain.policy.resolver import CurrencyDetails


@dataclass(frozen=True)
class RunSummary:
    total_distributed: GrainAmount
    recipient_count: int
    distribution_count: int

    @staticmethod
    def of(distributions: Iterable[Distribution]) -> RunSummary:
        distributions = list(distributions)
        recipients: set[IdentityId] = set()
        for distribution in distributions:
            recipients |= distribution.recipients()
        return RunSummary(
            total_distributed=G.total(d.total() for d in distributions),
            recipient_count=len(recipients),
            distribution_count=len(distributions),
        )

    def headline(self, currency: CurrencyDetails) -> str:
        amount = G.format(self.total_distributed, currency.decimals, currency.suffix)
        return (
            f"Distributed {amount} to {self.recipient_count} identities "
            f"in {self.distribution_count} distributions"
        )


def _date(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def distribution_summary(
    distribution: Distribution,
    currency: CurrencyDetails,
) -> str:
    epoch = distribution.epoch
    lines = [
        f"# Distribution {distribution.distribution_id}",
        "",
        f"Epoch: {_date(epoch.start_ms)} to {_date(epoch.end_ms)}",
        f"Total: {G.format(distribution.total(), currency.decimals, currency.suffix)}",
        f"Recipients: {len(distribution.recipients())}",
    ]
    return "\n".join(lines)


def allocation_summary(
    allocation: Allocation,
    ledger: Ledger,
    currency: CurrencyDetails,
) -> str:
    """Receipts table for one allocation, largest first."""
    lines = [
        f"## {allocation.policy.value} policy "
        f"(budget {G.format(allocation.budget, currency.decimals, currency.suffix)})",
        "",
        "| Name | Amount |",
        "| --- | ---: |",
    ]
    receipts = sorted(
        allocation.receipts,
        key=lambda r: (-r.amount.base_units, r.identity_id),
    )
    for receipt in receipts:
        identity = ledger.identity(receipt.identity_id)
        name = identity.name if identity else receipt.identity_id
        amount = G.format(receipt.amount, currency.decimals, currency.suffix)
        lines.append(f"| {name} | {amount} |")
    if not receipts:
        lines.append("| (no recipients) | |")
    return "\n".join(lines)
