"""Personal attributions — time-varying redirection of a participant's Grain.

A personal attribution says "from this time onward, this fraction of
everything distributed to participant A goes to participant B instead",
until a later proportion for the same pair supersedes it.

The PersonalAttributionsMap is built once per run from the full set of
attributions and the epoch starts that will be evaluated. Construction
fails closed: a map is never returned in a partially valid state.

Validation rules (one error type per rule):
1. At most one attribution per (from, to) pair.
2. Proportion timestamps are non-decreasing.
3. Every proportion value lies in [0, 1].
4. For every tested epoch, no participant redirects more than 100%.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from credgrain.models.distribution import TimestampMs
from credgrain.models.identity import IdentityId, parse_identity_id


class PersonalAttributionError(ValueError):
    """Base class for invalid personal attribution input."""


class DuplicateAttributionError(PersonalAttributionError):
    def __init__(self, from_id: IdentityId, to_id: IdentityId) -> None:
        super().__init__(
            f"More than one attribution found from [{from_id}] to [{to_id}]"
        )
        self.from_id = from_id
        self.to_id = to_id


class ProportionOrderError(PersonalAttributionError):
    def __init__(self, from_id: IdentityId, to_id: IdentityId) -> None:
        super().__init__(
            f"Personal attribution proportions not in chronological order "
            f"for [{from_id}] to [{to_id}]"
        )
        self.from_id = from_id
        self.to_id = to_id


class ProportionRangeError(PersonalAttributionError):
    def __init__(self, value: float) -> None:
        super().__init__(
            f"Personal attribution proportion value must be between 0 and 1, "
            f"inclusive. Found [{value}]."
        )
        self.value = value


class OverAttributionError(PersonalAttributionError):
    def __init__(self, from_id: IdentityId, epoch_start: TimestampMs, total: float) -> None:
        super().__init__(
            f"Sum of personal attributions from [{from_id}] for epoch "
            f"[{epoch_start}] is greater than 1. Found: [{total}]."
        )
        self.from_id = from_id
        self.epoch_start = epoch_start
        self.total = total


class AttributionNotFoundError(LookupError):
    """Raised when querying a (from, to) pair that has no attribution."""

    def __init__(self, from_id: IdentityId, to_id: Optional[IdentityId] = None) -> None:
        if to_id is None:
            message = f"Could not find personal attributions from [{from_id}]"
        else:
            message = f"Could not find personal attribution from [{from_id}] to [{to_id}]"
        super().__init__(message)
        self.from_id = from_id
        self.to_id = to_id

    def __str__(self) -> str:
        return self.args[0]


@dataclass(frozen=True)
class PersonalAttributionProportion:
    timestamp_ms: TimestampMs
    proportion_value: float


@dataclass(frozen=True)
class PersonalAttribution:
    from_participant_id: IdentityId
    to_participant_id: IdentityId
    proportions: tuple[PersonalAttributionProportion, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromParticipantId": self.from_participant_id,
            "toParticipantId": self.to_participant_id,
            "proportions": [
                {"timestampMs": p.timestamp_ms, "proportionValue": p.proportion_value}
                for p in self.proportions
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PersonalAttribution:
        return cls(
            from_participant_id=parse_identity_id(data["fromParticipantId"]),
            to_participant_id=parse_identity_id(data["toParticipantId"]),
            proportions=tuple(
                PersonalAttributionProportion(
                    timestamp_ms=int(p["timestampMs"]),
                    proportion_value=float(p["proportionValue"]),
                )
                for p in data["proportions"]
            ),
        )


def exact_proportion(value: float) -> Decimal:
    """Exact decimal form of a configured proportion.

    Proportions are authored as short decimals ("0.4"); going through
    their shortest repr keeps sums like 0.1 + 0.2 + 0.7 exactly 1.
    """
    return Decimal(repr(float(value)))


class PersonalAttributionsMap:
    """Validated, immutable index of attributions grouped by source participant.

    Usage:
        pa_map = PersonalAttributionsMap(attributions, epoch_starts)
        for to_id in pa_map.recipients_for_epoch_and_participant(start, from_id):
            value = pa_map.get_proportion_value(start, from_id, to_id)
    """

    def __init__(
        self,
        personal_attributions: Iterable[PersonalAttribution],
        epoch_starts: Sequence[TimestampMs],
    ) -> None:
        attributions = list(personal_attributions)

        identity_pairs: set[tuple[IdentityId, IdentityId]] = set()
        for pa in attributions:
            pair = (pa.from_participant_id, pa.to_participant_id)
            if pair in identity_pairs:
                raise DuplicateAttributionError(*pair)
            identity_pairs.add(pair)

            previous: Optional[PersonalAttributionProportion] = None
            for proportion in pa.proportions:
                if previous is not None and proportion.timestamp_ms < previous.timestamp_ms:
                    raise ProportionOrderError(*pair)
                if not 0 <= proportion.proportion_value <= 1:
                    raise ProportionRangeError(proportion.proportion_value)
                previous = proportion

        grouped: dict[IdentityId, list[PersonalAttribution]] = {}
        for pa in attributions:
            grouped.setdefault(pa.from_participant_id, []).append(pa)
        self._map: dict[IdentityId, tuple[PersonalAttribution, ...]] = {
            from_id: tuple(group) for from_id, group in grouped.items()
        }

        for from_id, group in self._map.items():
            for epoch_start in epoch_starts:
                total = self._exact_sum(epoch_start, group)
                if total > 1:
                    raise OverAttributionError(from_id, epoch_start, float(total))

    @classmethod
    def empty(cls) -> PersonalAttributionsMap:
        return cls([], [])

    def to_personal_attributions(self) -> list[PersonalAttribution]:
        return [pa for group in self._map.values() for pa in group]

    def recipients_for_epoch_and_participant(
        self,
        epoch_start: TimestampMs,
        from_participant_id: IdentityId,
    ) -> list[IdentityId]:
        """Recipients with a non-zero effective proportion for this epoch."""
        group = self._map.get(from_participant_id)
        if not group:
            return []
        return [
            pa.to_participant_id
            for pa in group
            if self._get_proportion_value(epoch_start, pa.proportions)
        ]

    def get_proportion_value(
        self,
        epoch_start: TimestampMs,
        from_participant_id: IdentityId,
        to_participant_id: IdentityId,
    ) -> Optional[float]:
        """Effective proportion for an exact pair.

        Raises AttributionNotFoundError if the pair has no attribution.
        Returns None if the attribution is not active yet.
        """
        group = self._map.get(from_participant_id)
        if not group:
            raise AttributionNotFoundError(from_participant_id)
        for pa in group:
            if pa.to_participant_id == to_participant_id:
                return self._get_proportion_value(epoch_start, pa.proportions)
        raise AttributionNotFoundError(from_participant_id, to_participant_id)

    def get_sum_proportion_value(
        self,
        epoch_start: TimestampMs,
        from_participant_id: IdentityId,
    ) -> Optional[float]:
        """Sum of effective proportions across a participant's attributions.

        Unlike get_proportion_value, an unknown participant is not an
        error: it returns None ("no redirection configured"), whereas a
        participant whose attributions are all inactive returns 0.
        """
        group = self._map.get(from_participant_id)
        if not group:
            return None
        return float(self._exact_sum(epoch_start, group))

    @staticmethod
    def _get_proportion_value(
        epoch_start: TimestampMs,
        proportions: Sequence[PersonalAttributionProportion],
    ) -> Optional[float]:
        if proportions and epoch_start < proportions[0].timestamp_ms:
            return None
        # The most recent proportion set strictly before the epoch began.
        for proportion in reversed(proportions):
            if proportion.timestamp_ms < epoch_start:
                return proportion.proportion_value
        return None

    def _exact_sum(
        self,
        epoch_start: TimestampMs,
        group: Sequence[PersonalAttribution],
    ) -> Decimal:
        total = Decimal("0")
        for pa in group:
            value = self._get_proportion_value(epoch_start, pa.proportions)
            if value is not None:
                total += exact_proportion(value)
        return total


def parse_personal_attributions(text: str) -> list[PersonalAttribution]:
    """Parse the personalAttributions.json config (a JSON array)."""
    try:
        data = json.loads(text) if text.strip() else []
        if not isinstance(data, list):
            raise PersonalAttributionError("Personal attributions must be a JSON array")
        return [PersonalAttribution.from_dict(item) for item in data]
    except PersonalAttributionError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise PersonalAttributionError(f"Malformed personal attributions: {exc}") from exc


def serialize_personal_attributions(attributions: Iterable[PersonalAttribution]) -> str:
    return json.dumps(
        [pa.to_dict() for pa in attributions],
        sort_keys=True,
        ensure_ascii=False,
        indent=2,
    )
