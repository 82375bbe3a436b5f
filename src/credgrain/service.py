"""CredGrain service — the facade that runs a Grain distribution batch.

It wires the subsystems together for one run:
- load the ledger (empty ledger if none is persisted yet) and Cred data,
- validate personal attributions against every Cred epoch,
- compute and append due distributions in memory,
- persist the ledger, then the account projection.

Nothing is written until every distribution for the run has been
computed. The projection is written only after the ledger write has
succeeded. In simulation mode nothing is written at all.

All operations return a ServiceResult; domain errors are reported in
`errors` instead of escaping, and no partial state is persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from credgrain.attribution.personal import (
    AttributionNotFoundError,
    PersonalAttributionError,
    PersonalAttributionsMap,
)
from credgrain.cred.view import CredView, CredViewError
from credgrain.distribution.engine import DistributionPolicyEngine
from credgrain.ledger.accounts import CredAccounts, compute_cred_accounts
from credgrain.ledger.ledger import Ledger, LedgerError, now_ms
from credgrain.ledger.summary import RunSummary, allocation_summary, distribution_summary
from credgrain.models.distribution import TimestampMs
from credgrain.models.grain import GrainUnderflowError
from credgrain.persistence.storage import (
    StorageError,
    WritableDataStorage,
    from_byte_string,
    get_with_default,
    to_byte_string,
)
from credgrain.policy.resolver import PolicyConfigError, PolicyResolver


logger = logging.getLogger(__name__)

LEDGER_KEY = "data/ledger.json"
CRED_RESULT_KEY = "output/credResult.json"
ACCOUNTS_KEY = "output/accounts.json"

# Errors that abort a run with a failed result.
RUN_ERRORS = (
    PersonalAttributionError,
    AttributionNotFoundError,
    LedgerError,
    StorageError,
    PolicyConfigError,
    CredViewError,
    GrainUnderflowError,
)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class GrainService:
    """Runs distribution batches and account projections for one instance.

    Usage:
        resolver = PolicyResolver.from_config_dir(instance / "config")
        service = GrainService(resolver, DiskStorage(instance))

        result = service.distribute(simulation=True)
        print(result.data["report"])

        result = service.distribute()
        result = service.recompute_accounts()
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        storage: WritableDataStorage,
        clock: Callable[[], TimestampMs] = now_ms,
    ) -> None:
        self._resolver = resolver
        self._storage = storage
        self._clock = clock
        self._engine = DistributionPolicyEngine(resolver.distribution_policy())

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_ledger(self) -> Ledger:
        empty = to_byte_string(Ledger().serialize())
        return Ledger.parse(from_byte_string(get_with_default(self._storage, LEDGER_KEY, empty)))

    def load_cred_view(self) -> CredView:
        return CredView.from_json(from_byte_string(self._storage.get(CRED_RESULT_KEY)))

    def build_attributions(self, cred_view: CredView) -> PersonalAttributionsMap:
        epoch_starts = [epoch.start_ms for epoch in cred_view.epochs()]
        return PersonalAttributionsMap(self._resolver.personal_attributions(), epoch_starts)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def distribute(self, simulation: bool = False) -> ServiceResult:
        """Compute and apply every due distribution.

        With simulation=True the run is computed and reported exactly as
        usual, but neither the ledger nor the projection is persisted.
        """
        try:
            ledger = self.load_ledger()
            cred_view = self.load_cred_view()
            attributions = self.build_attributions(cred_view)
            distributions = self._engine.apply_distributions(
                cred_view, ledger, attributions, self._clock()
            )
        except RUN_ERRORS as exc:
            logger.error("Distribution run failed: %s", exc)
            return ServiceResult(success=False, errors=[str(exc)])

        summary = RunSummary.of(distributions)
        report = self._report(distributions, ledger, summary, simulation)

        if simulation:
            logger.info("Simulation: ledger and accounts not persisted")
        else:
            try:
                self._storage.set(LEDGER_KEY, to_byte_string(ledger.serialize()))
                self._persist_accounts(compute_cred_accounts(ledger, cred_view))
            except StorageError as exc:
                logger.error("Failed to persist run: %s", exc)
                return ServiceResult(success=False, errors=[str(exc)])

        return ServiceResult(
            success=True,
            data={
                "simulation": simulation,
                "total_distributed": str(summary.total_distributed),
                "recipient_count": summary.recipient_count,
                "distribution_count": summary.distribution_count,
                "distribution_ids": [d.distribution_id for d in distributions],
                "report": report,
            },
        )

    def recompute_accounts(self) -> ServiceResult:
        """Rebuild and persist the Cred accounts projection."""
        try:
            ledger = self.load_ledger()
            cred_view = self.load_cred_view()
            accounts = compute_cred_accounts(ledger, cred_view)
            self._persist_accounts(accounts)
        except RUN_ERRORS as exc:
            logger.error("Account projection failed: %s", exc)
            return ServiceResult(success=False, errors=[str(exc)])

        return ServiceResult(
            success=True,
            data={
                "account_count": len(accounts.accounts),
                "report": f"Wrote {len(accounts.accounts)} accounts to {ACCOUNTS_KEY}",
            },
        )

    def status(self) -> dict[str, Any]:
        ledger = self.load_ledger()
        return {
            "identities": len(ledger.identities()),
            "distributions": len(ledger.distributions()),
            "events": ledger.count,
            "total_balance": str(ledger.total_balance()),
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _persist_accounts(self, accounts: CredAccounts) -> None:
        self._storage.set(ACCOUNTS_KEY, to_byte_string(accounts.to_json()))

    def _report(
        self,
        distributions: list,
        ledger: Ledger,
        summary: RunSummary,
        simulation: bool,
    ) -> str:
        currency = self._resolver.currency_details()
        parts = []
        if simulation:
            parts.append("——SIMULATED DISTRIBUTION——")
        parts.append(summary.headline(currency))
        for distribution in distributions:
            parts.append(distribution_summary(distribution, currency))
            for allocation in distribution.allocations:
                parts.append(allocation_summary(allocation, ledger, currency))
        return "\n\n".join(parts)
