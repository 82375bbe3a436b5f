"""Distribution policy engine — computes the Grain distributions that are due.

For every completed epoch without a distribution, the engine builds one
Distribution with one Allocation per enabled policy clause:

    IMMEDIATE  budget = immediatePerWeek, weights = Cred earned in that epoch
    BALANCED   budget = balancedPerWeek,  weights = all-time Cred through that epoch

Each budget is apportioned by largest remainder, so an allocation's
receipts sum to exactly its budget (or to zero when nobody has Cred).
Personal attributions then move the configured fraction of each
recipient's share to the attributed participants, again by largest
remainder, so the allocation total is unchanged.

Each distribution is appended to the in-memory ledger before the next
epoch is considered. Nothing here persists anything.

Invariants:
- Sum of receipts == budget whenever any weight is positive.
- Redirection never changes an allocation's total.
- Identical inputs (including now_ms) produce identical distributions.
"""

from __future__ import annotations

import logging
import uuid
from typing import Mapping, Optional

from credgrain.attribution.personal import PersonalAttributionsMap, exact_proportion
from credgrain.cred.view import CredView
from credgrain.distribution.apportion import largest_remainder
from credgrain.ledger.ledger import Ledger
from credgrain.models.distribution import (
    Allocation,
    AllocationPolicyType,
    Distribution,
    Epoch,
    Receipt,
    TimestampMs,
)
from credgrain.models.grain import GrainAmount
from credgrain.models.identity import IdentityId
from credgrain.policy.resolver import DistributionPolicy, PolicyConfigError


logger = logging.getLogger(__name__)

# Distribution and allocation ids are derived from the epoch so that
# recomputing a run yields byte-identical events.
DISTRIBUTION_NAMESPACE = uuid.UUID("5f1c6f0e-9d1a-4c8e-8a53-2b7f0e1d4c90")


class DistributionPolicyEngine:
    """Determines which epochs are due and computes their distributions.

    Usage:
        engine = DistributionPolicyEngine(policy)
        distributions = engine.apply_distributions(
            cred_view=view,
            ledger=ledger,
            attributions=pa_map,
            now_ms=now,
        )
    """

    def __init__(self, policy: DistributionPolicy) -> None:
        for name, budget in (
            ("immediate_per_week", policy.immediate_per_week),
            ("balanced_per_week", policy.balanced_per_week),
        ):
            if not isinstance(budget, GrainAmount):
                raise PolicyConfigError(f"{name} must be a GrainAmount, got {budget!r}")
        cap = policy.max_simultaneous_distributions
        if cap is not None and (isinstance(cap, bool) or not isinstance(cap, int) or cap < 1):
            raise PolicyConfigError(
                f"max_simultaneous_distributions must be a positive integer, got {cap!r}"
            )
        self._policy = policy

    @property
    def policy(self) -> DistributionPolicy:
        return self._policy

    def clauses(self) -> list[tuple[AllocationPolicyType, GrainAmount]]:
        """Enabled policy clauses, in allocation order."""
        clauses = [
            (AllocationPolicyType.IMMEDIATE, self._policy.immediate_per_week),
            (AllocationPolicyType.BALANCED, self._policy.balanced_per_week),
        ]
        return [(kind, budget) for kind, budget in clauses if budget]

    def due_epochs(
        self,
        cred_view: CredView,
        ledger: Ledger,
        now_ms: TimestampMs,
    ) -> list[Epoch]:
        """Completed epochs without a distribution, oldest first, capped."""
        due = [
            epoch
            for epoch in sorted(cred_view.epochs())
            if epoch.is_completed(now_ms) and not ledger.has_distribution_for(epoch.start_ms)
        ]
        cap = self._policy.max_simultaneous_distributions
        if cap is not None:
            due = due[:cap]
        return due

    def compute_distribution(
        self,
        epoch: Epoch,
        cred_view: CredView,
        attributions: PersonalAttributionsMap,
        created_ms: TimestampMs,
    ) -> Distribution:
        distribution_id = str(
            uuid.uuid5(DISTRIBUTION_NAMESPACE, f"distribution:{epoch.start_ms}")
        )
        allocations = []
        for kind, budget in self.clauses():
            if kind == AllocationPolicyType.IMMEDIATE:
                weights = cred_view.epoch_weights(epoch.start_ms)
            else:
                weights = cred_view.cumulative_weights(epoch.start_ms)

            shares = largest_remainder(budget.base_units, weights)
            shares = self._redirect(epoch, shares, attributions)
            allocations.append(
                Allocation(
                    allocation_id=str(
                        uuid.uuid5(DISTRIBUTION_NAMESPACE, f"{distribution_id}:{kind.value}")
                    ),
                    policy=kind,
                    budget=budget,
                    receipts=tuple(
                        Receipt(identity_id=identity_id, amount=GrainAmount(amount))
                        for identity_id, amount in sorted(shares.items())
                        if amount > 0
                    ),
                )
            )
            if not shares:
                logger.warning(
                    "No positive %s Cred in epoch %d; budget left undistributed",
                    kind.value,
                    epoch.start_ms,
                )

        return Distribution(
            distribution_id=distribution_id,
            epoch=epoch,
            created_ms=created_ms,
            allocations=tuple(allocations),
        )

    def apply_distributions(
        self,
        cred_view: CredView,
        ledger: Ledger,
        attributions: Optional[PersonalAttributionsMap],
        now_ms: TimestampMs,
    ) -> list[Distribution]:
        """Compute every due distribution and append each to the ledger.

        Cred participants that the ledger has never seen are registered
        first, so that every receipt references a known identity.
        """
        if attributions is None:
            attributions = PersonalAttributionsMap.empty()
        if not self.clauses():
            logger.info("Distribution policy has no enabled clauses; nothing to do")
            return []

        for participant in cred_view.participants():
            if not ledger.has_identity(participant.identity_id):
                ledger.create_identity(
                    participant.name,
                    identity_id=participant.identity_id,
                    timestamp_ms=now_ms,
                )
                logger.info(
                    "Registered identity %s (%s) from Cred data",
                    participant.name,
                    participant.identity_id,
                )

        distributions = []
        for epoch in self.due_epochs(cred_view, ledger, now_ms):
            distribution = self.compute_distribution(epoch, cred_view, attributions, now_ms)
            ledger.distribute_grain(distribution)
            distributions.append(distribution)
        return distributions

    @staticmethod
    def _redirect(
        epoch: Epoch,
        shares: Mapping[IdentityId, int],
        attributions: PersonalAttributionsMap,
    ) -> dict[IdentityId, int]:
        """Move attributed fractions of each share to their recipients.

        Only the raw shares are redirected; Grain received through an
        attribution is not redirected again.
        """
        result: dict[IdentityId, int] = {}
        for from_id, amount in shares.items():
            recipients = [
                to_id
                for to_id in attributions.recipients_for_epoch_and_participant(
                    epoch.start_ms, from_id
                )
                if to_id != from_id
            ]
            if not recipients or amount == 0:
                result[from_id] = result.get(from_id, 0) + amount
                continue

            weights = {}
            for to_id in recipients:
                value = attributions.get_proportion_value(epoch.start_ms, from_id, to_id)
                weights[to_id] = exact_proportion(value)
            weights[from_id] = 1 - sum(weights.values())

            for identity_id, portion in largest_remainder(amount, weights).items():
                result[identity_id] = result.get(identity_id, 0) + portion
        return result


def apply_distributions(
    policy: DistributionPolicy,
    cred_view: CredView,
    ledger: Ledger,
    attributions: Optional[PersonalAttributionsMap],
    now_ms: TimestampMs,
) -> list[Distribution]:
    """Convenience wrapper: build an engine and apply due distributions."""
    return DistributionPolicyEngine(policy).apply_distributions(
        cred_view, ledger, attributions, now_ms
    )
