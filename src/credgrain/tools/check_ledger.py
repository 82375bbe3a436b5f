"""Ledger invariant checks against a persisted instance.

Replays data/ledger.json from scratch (which re-verifies every event
hash and re-validates every append) and then checks the conservation
properties that must hold for any ledger this engine has written:

- Sum of all balances == sum of all distributed Grain.
- Every allocation pays out exactly its budget, or nothing at all.
- Every identity's balance is covered by what it was paid plus what
  it received through transfers.
"""

from __future__ import annotations

import sys
from pathlib import Path

from credgrain.ledger.events import LedgerEventKind
from credgrain.ledger.ledger import Ledger, LedgerError
from credgrain.models import grain as G
from credgrain.persistence.storage import DiskStorage, from_byte_string, get_with_default
from credgrain.service import LEDGER_KEY


def check_ledger(ledger: Ledger) -> list[str]:
    errors: list[str] = []

    distributed = G.total(d.total() for d in ledger.distributions())
    if ledger.total_balance() != distributed:
        errors.append(
            f"Total balance {ledger.total_balance()} != total distributed {distributed}"
        )

    for distribution in ledger.distributions():
        for allocation in distribution.allocations:
            paid_out = allocation.total()
            if allocation.receipts and paid_out != allocation.budget:
                errors.append(
                    f"Allocation {allocation.allocation_id} pays {paid_out} "
                    f"but its budget is {allocation.budget}"
                )

    received: dict[str, int] = {}
    for event in ledger.events():
        if event.kind == LedgerEventKind.GRAIN_TRANSFERRED:
            to_id = event.payload["to"]
            received[to_id] = received.get(to_id, 0) + int(event.payload["amount"])
    for identity in ledger.identities():
        ceiling = ledger.paid(identity.id).base_units + received.get(identity.id, 0)
        if ledger.balance(identity.id).base_units > ceiling:
            errors.append(
                f"Identity {identity.name} holds more Grain than it was ever given"
            )

    return errors


def check(instance: Path) -> int:
    storage = DiskStorage(instance)
    text = from_byte_string(get_with_default(storage, LEDGER_KEY, b""))
    try:
        ledger = Ledger.parse(text)
    except LedgerError as exc:
        print("Ledger check failed:")
        print(f"- replay: {exc}")
        return 1

    errors = check_ledger(ledger)
    if errors:
        print("Ledger check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print(
        f"Ledger check passed ({ledger.count} events, "
        f"{len(ledger.distributions())} distributions)."
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(check(Path(sys.argv[1]) if len(sys.argv) > 1 else Path.cwd()))
