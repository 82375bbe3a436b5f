"""CredView — read-only access to externally computed Cred scores.

Cred is computed elsewhere and handed to the Grain engine as a series of
per-identity weights, one per epoch, alongside the cumulative (all-time
up to and including that epoch) weight. The engine treats the values as
opaque non-negative weights.

Input format (output/credResult.json):

    {
      "intervals": [{"startTimeMs": 0, "endTimeMs": 604800000}, ...],
      "participants": [
        {"id": "<uuid>", "name": "alice", "cred": [1.5, 2.0, ...],
         "cumulativeCred": [1.5, 3.5, ...]}
      ]
    }

"cumulativeCred" is optional; when absent it is the running sum of "cred".
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Optional

from credgrain.models.distribution import Epoch, TimestampMs
from credgrain.models.identity import IdentityId, name_from_string, parse_identity_id


class CredViewError(ValueError):
    """Raised when Cred data is malformed."""


@dataclass(frozen=True)
class CredParticipant:
    identity_id: IdentityId
    name: str
    cred_per_epoch: tuple[float, ...]
    cumulative_cred: tuple[float, ...]

    @property
    def total_cred(self) -> float:
        return self.cumulative_cred[-1] if self.cumulative_cred else 0.0


class CredView:
    """Per-identity, per-epoch Cred weights.

    Usage:
        view = CredView.from_json(text)
        for epoch in view.epochs():
            weights = view.epoch_weights(epoch.start_ms)
            cumulative = view.cumulative_weights(epoch.start_ms)
    """

    def __init__(
        self,
        epochs: list[Epoch],
        participants: list[CredParticipant],
    ) -> None:
        for earlier, later in zip(epochs, epochs[1:]):
            if later.start_ms <= earlier.start_ms:
                raise CredViewError("Cred intervals must be in chronological order")
            if later.start_ms < earlier.end_ms:
                raise CredViewError(
                    f"Cred intervals overlap at {later.start_ms}"
                )

        seen: set[IdentityId] = set()
        for participant in participants:
            if participant.identity_id in seen:
                raise CredViewError(
                    f"Duplicate Cred participant: {participant.identity_id}"
                )
            seen.add(participant.identity_id)
            for series in (participant.cred_per_epoch, participant.cumulative_cred):
                if len(series) != len(epochs):
                    raise CredViewError(
                        f"Participant {participant.identity_id} has {len(series)} "
                        f"Cred values for {len(epochs)} intervals"
                    )
                if any(not math.isfinite(value) or value < 0 for value in series):
                    raise CredViewError(
                        f"Participant {participant.identity_id} has negative or "
                        f"non-finite Cred"
                    )

        self._epochs = list(epochs)
        self._index = {epoch.start_ms: i for i, epoch in enumerate(epochs)}
        self._participants = {p.identity_id: p for p in participants}

    def epochs(self) -> list[Epoch]:
        return list(self._epochs)

    def participants(self) -> list[CredParticipant]:
        return list(self._participants.values())

    def participant(self, identity_id: IdentityId) -> Optional[CredParticipant]:
        return self._participants.get(identity_id)

    def epoch_weights(self, epoch_start: TimestampMs) -> dict[IdentityId, float]:
        """Cred earned in this epoch alone, for every participant."""
        i = self._epoch_index(epoch_start)
        return {pid: p.cred_per_epoch[i] for pid, p in self._participants.items()}

    def cumulative_weights(self, epoch_start: TimestampMs) -> dict[IdentityId, float]:
        """All-time Cred up to and including this epoch, for every participant."""
        i = self._epoch_index(epoch_start)
        return {pid: p.cumulative_cred[i] for pid, p in self._participants.items()}

    def _epoch_index(self, epoch_start: TimestampMs) -> int:
        try:
            return self._index[epoch_start]
        except KeyError:
            raise CredViewError(f"No Cred interval starts at {epoch_start}") from None

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "intervals": [e.to_dict() for e in self._epochs],
            "participants": [
                {
                    "id": p.identity_id,
                    "name": p.name,
                    "cred": list(p.cred_per_epoch),
                    "cumulativeCred": list(p.cumulative_cred),
                }
                for p in self._participants.values()
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredView:
        try:
            epochs = [Epoch.from_dict(i) for i in data["intervals"]]
            participants = []
            for p in data["participants"]:
                cred = tuple(float(v) for v in p["cred"])
                if "cumulativeCred" in p:
                    cumulative = tuple(float(v) for v in p["cumulativeCred"])
                else:
                    running = 0.0
                    values = []
                    for value in cred:
                        running += value
                        values.append(running)
                    cumulative = tuple(values)
                participants.append(
                    CredParticipant(
                        identity_id=parse_identity_id(p["id"]),
                        name=name_from_string(p["name"]),
                        cred_per_epoch=cred,
                        cumulative_cred=cumulative,
                    )
                )
        except (KeyError, TypeError, ValueError) as exc:
            raise CredViewError(f"Malformed Cred data: {exc}") from exc
        return cls(epochs, participants)

    @classmethod
    def from_json(cls, text: str) -> CredView:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CredViewError(f"Invalid Cred JSON: {exc}") from exc
        return cls.from_dict(data)
