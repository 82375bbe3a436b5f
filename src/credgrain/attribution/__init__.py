"""Personal attributions — participant-to-participant payout redirection."""

from credgrain.attribution.personal import (
    AttributionNotFoundError,
    DuplicateAttributionError,
    OverAttributionError,
    PersonalAttribution,
    PersonalAttributionError,
    PersonalAttributionProportion,
    PersonalAttributionsMap,
    ProportionOrderError,
    ProportionRangeError,
)

__all__ = [
    "AttributionNotFoundError",
    "DuplicateAttributionError",
    "OverAttributionError",
    "PersonalAttribution",
    "PersonalAttributionError",
    "PersonalAttributionProportion",
    "PersonalAttributionsMap",
    "ProportionOrderError",
    "ProportionRangeError",
]
