"""Cred accounts — a read-only snapshot joining Cred with Grain balances.

The projection is recomputed from scratch on every run and is never a
source of truth. Accounts are sorted by identity id and serialized with
sorted keys, so identical inputs always produce byte-identical output
and persisted snapshots diff cleanly.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from credgrain.cred.view import CredView
from credgrain.ledger.ledger import Ledger
from credgrain.models.distribution import Epoch
from credgrain.models.grain import GrainAmount
from credgrain.models.identity import Identity


@dataclass(frozen=True)
class CredAccount:
    identity: Identity
    total_cred: float
    cred_per_epoch: tuple[float, ...]
    paid: GrainAmount
    balance: GrainAmount

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "totalCred": self.total_cred,
            "cred": list(self.cred_per_epoch),
            "paid": str(self.paid),
            "balance": str(self.balance),
        }


@dataclass(frozen=True)
class CredAccounts:
    epochs: tuple[Epoch, ...]
    accounts: tuple[CredAccount, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "intervals": [e.to_dict() for e in self.epochs],
            "accounts": [a.to_dict() for a in self.accounts],
        }

    def to_json(self) -> str:
        return json.dumps(
            self.to_dict(),
            sort_keys=True,
            ensure_ascii=False,
            separators=(",", ":"),
        )


def compute_cred_accounts(ledger: Ledger, cred_view: CredView) -> CredAccounts:
    """One account per identity known to the ledger or the Cred view."""
    epochs = tuple(cred_view.epochs())
    no_cred = tuple(0.0 for _ in epochs)

    identities = {identity.id: identity for identity in ledger.identities()}
    for participant in cred_view.participants():
        if participant.identity_id not in identities:
            identities[participant.identity_id] = Identity(
                id=participant.identity_id,
                name=participant.name,
            )

    accounts = []
    for identity_id in sorted(identities):
        participant = cred_view.participant(identity_id)
        accounts.append(
            CredAccount(
                identity=identities[identity_id],
                total_cred=participant.total_cred if participant else 0.0,
                cred_per_epoch=participant.cred_per_epoch if participant else no_cred,
                paid=ledger.paid(identity_id),
                balance=ledger.balance(identity_id),
            )
        )
    return CredAccounts(epochs=epochs, accounts=tuple(accounts))
