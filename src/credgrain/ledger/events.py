"""Ledger events — the immutable records the ledger is folded from.

Every state change in the ledger is an event appended to an ordered log.
Events are immutable once written. Each event carries a SHA-256 hash of
its canonical JSON form, recomputed on load so that a tampered ledger
file is rejected rather than silently replayed.
"""

from __future__ import annotations

import copy
import enum
import hashlib
import json
from dataclasses import dataclass, replace
from typing import Any


LEDGER_EVENT_VERSION = "1"


class LedgerEventKind(str, enum.Enum):
    """Classification of ledger events."""
    IDENTITY_CREATED = "identity_created"
    IDENTITY_RENAMED = "identity_renamed"
    ALIAS_ADDED = "alias_added"
    DISTRIBUTION_APPLIED = "distribution_applied"
    GRAIN_TRANSFERRED = "grain_transferred"


def _canonical_hash(
    version: str,
    kind: str,
    timestamp_ms: int,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "version": version,
            "kind": kind,
            "timestamp_ms": timestamp_ms,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class LedgerEvent:
    """A single immutable event in the ledger.

    The payload holds only JSON-native values (amounts as base-unit
    strings) so that the hash computed at creation is the same one
    recomputed from the serialized form.
    """
    version: str
    kind: LedgerEventKind
    timestamp_ms: int
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        kind: LedgerEventKind,
        payload: dict[str, Any],
        timestamp_ms: int,
    ) -> LedgerEvent:
        """Create a new event record with computed hash.

        The payload is copied, so later changes to the caller's dict
        cannot desynchronize it from the hash.
        """
        payload = copy.deepcopy(payload)
        return LedgerEvent(
            version=LEDGER_EVENT_VERSION,
            kind=kind,
            timestamp_ms=timestamp_ms,
            payload=payload,
            event_hash=_canonical_hash(
                LEDGER_EVENT_VERSION, kind.value, timestamp_ms, payload
            ),
        )

    def detached(self) -> LedgerEvent:
        """A copy whose payload can be mutated without touching this event."""
        return replace(self, payload=copy.deepcopy(self.payload))

    def to_json(self) -> str:
        record = {
            "version": self.version,
            "kind": self.kind.value,
            "timestamp_ms": self.timestamp_ms,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }
        return json.dumps(record, sort_keys=True, ensure_ascii=False)

    @staticmethod
    def from_json(line: str, line_num: int = 0) -> LedgerEvent:
        """Load an event, verifying its stored hash.

        Fail-closed: raises ValueError on a hash mismatch or unknown kind.
        """
        data = json.loads(line)
        try:
            kind = LedgerEventKind(data["kind"])
        except ValueError:
            raise ValueError(
                f"Unknown ledger event kind (line {line_num}): {data['kind']!r}"
            ) from None

        expected_hash = _canonical_hash(
            data["version"], data["kind"], data["timestamp_ms"], data["payload"]
        )
        if data["event_hash"] != expected_hash:
            raise ValueError(
                f"Integrity check failed (line {line_num}): stored hash "
                f"{data['event_hash']} != computed {expected_hash}"
            )

        return LedgerEvent(
            version=data["version"],
            kind=kind,
            timestamp_ms=data["timestamp_ms"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )
