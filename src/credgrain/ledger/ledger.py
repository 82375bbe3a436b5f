"""Ledger — the append-only source of truth for identities and Grain.

The ledger is an ordered log of immutable events. Every query (balances,
identities, which epochs have been distributed) is a fold over that log.
The folded view is cached and advanced one event at a time; it is never
written to by anything other than the fold itself, so a ledger rebuilt
from its serialized events always answers exactly as the original did.

Invariants enforced on every append (and again on every replay):
- At most one distribution per epoch.
- Every receipt and transfer references a known identity.
- No balance ever goes negative.
- Identity ids and names are unique.

A rejected event leaves the ledger unchanged.

Serialized form: JSON lines, one event per line, keys sorted. The empty
ledger serializes to the empty string.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from credgrain.ledger.events import LedgerEvent, LedgerEventKind
from credgrain.models.distribution import Distribution, TimestampMs
from credgrain.models.grain import GrainAmount, ZERO
from credgrain.models.identity import (
    Identity,
    IdentityId,
    name_from_string,
    new_identity_id,
    parse_identity_id,
)


logger = logging.getLogger(__name__)


class LedgerError(ValueError):
    """Raised when an event would violate a ledger invariant."""


def now_ms() -> TimestampMs:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass
class _LedgerView:
    """State derived by folding the event log. Only _apply writes to it."""
    identities: dict[IdentityId, Identity] = field(default_factory=dict)
    names: dict[str, IdentityId] = field(default_factory=dict)
    aliases: dict[str, IdentityId] = field(default_factory=dict)
    balances: dict[IdentityId, int] = field(default_factory=dict)
    paid: dict[IdentityId, int] = field(default_factory=dict)
    distributions: list[Distribution] = field(default_factory=list)
    distributed_epochs: dict[TimestampMs, str] = field(default_factory=dict)


class Ledger:
    """Append-only event ledger with balances derived by replay.

    Usage:
        ledger = Ledger()
        alice = ledger.create_identity("alice")
        ledger.distribute_grain(distribution)
        ledger.balance(alice.id)

        text = ledger.serialize()
        restored = Ledger.parse(text)
    """

    def __init__(self) -> None:
        self._events: list[LedgerEvent] = []
        self._view = _LedgerView()

    # ------------------------------------------------------------------
    # Mutations (each appends exactly one event)
    # ------------------------------------------------------------------

    def create_identity(
        self,
        name: str,
        identity_id: Optional[IdentityId] = None,
        timestamp_ms: Optional[TimestampMs] = None,
    ) -> Identity:
        identity = Identity(
            id=parse_identity_id(identity_id) if identity_id else new_identity_id(),
            name=name_from_string(name),
        )
        self._append(
            LedgerEventKind.IDENTITY_CREATED,
            {"identity": identity.to_dict()},
            timestamp_ms,
        )
        return identity

    def rename_identity(
        self,
        identity_id: IdentityId,
        new_name: str,
        timestamp_ms: Optional[TimestampMs] = None,
    ) -> Identity:
        self._append(
            LedgerEventKind.IDENTITY_RENAMED,
            {"identityId": identity_id, "newName": name_from_string(new_name)},
            timestamp_ms,
        )
        return self._view.identities[identity_id]

    def add_alias(
        self,
        identity_id: IdentityId,
        alias: str,
        timestamp_ms: Optional[TimestampMs] = None,
    ) -> Identity:
        self._append(
            LedgerEventKind.ALIAS_ADDED,
            {"identityId": identity_id, "alias": alias},
            timestamp_ms,
        )
        return self._view.identities[identity_id]

    def distribute_grain(
        self,
        distribution: Distribution,
        timestamp_ms: Optional[TimestampMs] = None,
    ) -> None:
        if timestamp_ms is None:
            timestamp_ms = distribution.created_ms
        self._append(
            LedgerEventKind.DISTRIBUTION_APPLIED,
            {"distribution": distribution.to_dict()},
            timestamp_ms,
        )
        logger.debug(
            "Applied distribution %s for epoch %d",
            distribution.distribution_id,
            distribution.epoch.start_ms,
        )

    def transfer_grain(
        self,
        from_id: IdentityId,
        to_id: IdentityId,
        amount: GrainAmount,
        memo: Optional[str] = None,
        timestamp_ms: Optional[TimestampMs] = None,
    ) -> None:
        self._append(
            LedgerEventKind.GRAIN_TRANSFERRED,
            {"from": from_id, "to": to_id, "amount": str(amount), "memo": memo},
            timestamp_ms,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def identity(self, identity_id: IdentityId) -> Optional[Identity]:
        return self._view.identities.get(identity_id)

    def identity_by_name(self, name: str) -> Optional[Identity]:
        identity_id = self._view.names.get(name.lower())
        return self._view.identities[identity_id] if identity_id else None

    def identity_by_alias(self, alias: str) -> Optional[Identity]:
        identity_id = self._view.aliases.get(alias)
        return self._view.identities[identity_id] if identity_id else None

    def identities(self) -> list[Identity]:
        """All identities, in creation order."""
        return list(self._view.identities.values())

    def has_identity(self, identity_id: IdentityId) -> bool:
        return identity_id in self._view.identities

    def balance(self, identity_id: IdentityId) -> GrainAmount:
        return GrainAmount(self._view.balances.get(identity_id, 0))

    def paid(self, identity_id: IdentityId) -> GrainAmount:
        """Total Grain ever distributed to an identity (transfers excluded)."""
        return GrainAmount(self._view.paid.get(identity_id, 0))

    def total_balance(self) -> GrainAmount:
        return GrainAmount(sum(self._view.balances.values()))

    def distributions(self) -> list[Distribution]:
        return list(self._view.distributions)

    def distributed_epochs(self) -> set[TimestampMs]:
        """Start times of every epoch that already has a distribution."""
        return set(self._view.distributed_epochs)

    def has_distribution_for(self, epoch_start_ms: TimestampMs) -> bool:
        return epoch_start_ms in self._view.distributed_epochs

    def events(self) -> list[LedgerEvent]:
        return [event.detached() for event in self._events]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[LedgerEvent]:
        return self._events[-1].detached() if self._events else None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> str:
        return "".join(event.to_json() + "\n" for event in self._events)

    @classmethod
    def parse(cls, text: str) -> Ledger:
        """Rebuild a ledger by replaying serialized events.

        Every event is hash-verified and re-validated; a corrupt or
        inconsistent log raises rather than producing a partial ledger.
        """
        events = []
        try:
            for line_num, line in enumerate(text.splitlines(), 1):
                line = line.strip()
                if not line:
                    continue
                events.append(LedgerEvent.from_json(line, line_num))
            return cls.from_events(events)
        except LedgerError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerError(f"Corrupt ledger: {exc}") from exc

    @classmethod
    def from_events(cls, events: Iterable[LedgerEvent]) -> Ledger:
        ledger = cls()
        for event in events:
            event = event.detached()
            ledger._apply(event)
            ledger._events.append(event)
        return ledger

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _append(
        self,
        kind: LedgerEventKind,
        payload: dict[str, Any],
        timestamp_ms: Optional[TimestampMs],
    ) -> LedgerEvent:
        if timestamp_ms is None:
            timestamp_ms = now_ms()
        event = LedgerEvent.create(kind, payload, timestamp_ms)
        self._apply(event)
        self._events.append(event)
        return event

    def _apply(self, event: LedgerEvent) -> None:
        """Advance the folded view by one event.

        Each handler validates completely before touching the view, so a
        raised LedgerError leaves the view exactly as it was.
        """
        handlers = {
            LedgerEventKind.IDENTITY_CREATED: self._apply_identity_created,
            LedgerEventKind.IDENTITY_RENAMED: self._apply_identity_renamed,
            LedgerEventKind.ALIAS_ADDED: self._apply_alias_added,
            LedgerEventKind.DISTRIBUTION_APPLIED: self._apply_distribution,
            LedgerEventKind.GRAIN_TRANSFERRED: self._apply_transfer,
        }
        handlers[event.kind](event.payload)

    def _require_identity(self, identity_id: IdentityId) -> Identity:
        identity = self._view.identities.get(identity_id)
        if identity is None:
            raise LedgerError(f"Unknown identity: {identity_id}")
        return identity

    def _apply_identity_created(self, payload: dict[str, Any]) -> None:
        identity = Identity.from_dict(payload["identity"])
        view = self._view
        if identity.id in view.identities:
            raise LedgerError(f"Identity id already exists: {identity.id}")
        if identity.name.lower() in view.names:
            raise LedgerError(f"Identity name already taken: {identity.name}")
        view.identities[identity.id] = identity
        view.names[identity.name.lower()] = identity.id
        view.balances[identity.id] = 0
        view.paid[identity.id] = 0

    def _apply_identity_renamed(self, payload: dict[str, Any]) -> None:
        identity = self._require_identity(payload["identityId"])
        new_name = name_from_string(payload["newName"])
        owner = self._view.names.get(new_name.lower())
        if owner is not None and owner != identity.id:
            raise LedgerError(f"Identity name already taken: {new_name}")
        del self._view.names[identity.name.lower()]
        self._view.names[new_name.lower()] = identity.id
        self._view.identities[identity.id] = identity.with_name(new_name)

    def _apply_alias_added(self, payload: dict[str, Any]) -> None:
        identity = self._require_identity(payload["identityId"])
        alias = payload["alias"]
        if not alias:
            raise LedgerError("Alias must be non-empty")
        if alias in self._view.aliases:
            raise LedgerError(
                f"Alias {alias} already belongs to {self._view.aliases[alias]}"
            )
        self._view.aliases[alias] = identity.id
        self._view.identities[identity.id] = identity.with_alias(alias)

    def _apply_distribution(self, payload: dict[str, Any]) -> None:
        try:
            distribution = Distribution.from_dict(payload["distribution"])
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerError(f"Malformed distribution: {exc}") from exc

        view = self._view
        start = distribution.epoch.start_ms
        if start in view.distributed_epochs:
            raise LedgerError(
                f"Epoch {start} already has distribution "
                f"{view.distributed_epochs[start]}"
            )
        known_ids = set(view.distributed_epochs.values())
        if distribution.distribution_id in known_ids:
            raise LedgerError(
                f"Duplicate distribution id: {distribution.distribution_id}"
            )
        for allocation in distribution.allocations:
            for receipt in allocation.receipts:
                self._require_identity(receipt.identity_id)

        for allocation in distribution.allocations:
            for receipt in allocation.receipts:
                view.balances[receipt.identity_id] += receipt.amount.base_units
                view.paid[receipt.identity_id] += receipt.amount.base_units
        view.distributions.append(distribution)
        view.distributed_epochs[start] = distribution.distribution_id

    def _apply_transfer(self, payload: dict[str, Any]) -> None:
        from_id = payload["from"]
        to_id = payload["to"]
        amount = GrainAmount.from_string(payload["amount"])
        self._require_identity(from_id)
        self._require_identity(to_id)
        if from_id == to_id:
            raise LedgerError(f"Cannot transfer Grain from {from_id} to itself")
        if amount <= ZERO:
            raise LedgerError("Transfer amount must be positive")
        if self._view.balances[from_id] < amount.base_units:
            raise LedgerError(
                f"Insufficient balance: {from_id} holds "
                f"{self._view.balances[from_id]}, transfer needs {amount}"
            )
        self._view.balances[from_id] -= amount.base_units
        self._view.balances[to_id] += amount.base_units
