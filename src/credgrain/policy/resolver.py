"""Policy resolver — loads and validates the instance configuration.

Configuration lives in JSON files under the instance's config/ directory:

    grain.json                 distribution policy (required)
    currencyDetails.json       currency display settings (optional)
    personalAttributions.json  payout redirections (optional)

All validation happens eagerly when the resolver is built, so a
misconfigured instance fails before any computation starts.

grain.json fields:
    immediatePerWeek              Grain distributed on each epoch's own Cred.
    balancedPerWeek               Grain distributed on all-time Cred.
    maxSimultaneousDistributions  Cap on distributions per run; absent
                                  means unbounded.
All three are whole-Grain integers and must not be negative.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from credgrain.attribution.personal import PersonalAttribution, parse_personal_attributions
from credgrain.models.grain import DECIMAL_PRECISION, GrainAmount


GRAIN_CONFIG = "grain.json"
CURRENCY_CONFIG = "currencyDetails.json"
ATTRIBUTIONS_CONFIG = "personalAttributions.json"


class PolicyConfigError(ValueError):
    """Raised when the distribution policy or currency config is malformed."""


@dataclass(frozen=True)
class DistributionPolicy:
    immediate_per_week: GrainAmount
    balanced_per_week: GrainAmount
    max_simultaneous_distributions: Optional[int] = None


@dataclass(frozen=True)
class CurrencyDetails:
    name: str = "Grain"
    suffix: str = "g"
    decimals: int = 2


def _whole_grain(config: dict[str, Any], key: str) -> int:
    value = config.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        raise PolicyConfigError(f"{key} must be an integer, got {value!r}")
    if value < 0:
        raise PolicyConfigError(f"{key} must not be negative, got {value}")
    return value


def parse_distribution_policy(config: dict[str, Any]) -> DistributionPolicy:
    if not isinstance(config, dict):
        raise PolicyConfigError("Grain config must be a JSON object")
    unknown = set(config) - {
        "immediatePerWeek",
        "balancedPerWeek",
        "maxSimultaneousDistributions",
    }
    if unknown:
        raise PolicyConfigError(
            f"Unknown grain config fields: {', '.join(sorted(unknown))}"
        )

    max_simultaneous = config.get("maxSimultaneousDistributions")
    if max_simultaneous is not None:
        if isinstance(max_simultaneous, bool) or not isinstance(max_simultaneous, int):
            raise PolicyConfigError(
                f"maxSimultaneousDistributions must be an integer, "
                f"got {max_simultaneous!r}"
            )
        if max_simultaneous < 1:
            raise PolicyConfigError(
                f"maxSimultaneousDistributions must be at least 1, "
                f"got {max_simultaneous}"
            )

    return DistributionPolicy(
        immediate_per_week=GrainAmount.from_integer(
            _whole_grain(config, "immediatePerWeek")
        ),
        balanced_per_week=GrainAmount.from_integer(
            _whole_grain(config, "balancedPerWeek")
        ),
        max_simultaneous_distributions=max_simultaneous,
    )


def parse_currency_details(config: dict[str, Any]) -> CurrencyDetails:
    if not isinstance(config, dict):
        raise PolicyConfigError("Currency config must be a JSON object")
    defaults = CurrencyDetails()
    name = config.get("name", defaults.name)
    suffix = config.get("suffix", defaults.suffix)
    decimals = config.get("decimals", defaults.decimals)
    if not isinstance(name, str) or not isinstance(suffix, str):
        raise PolicyConfigError("Currency name and suffix must be strings")
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise PolicyConfigError(f"Currency decimals must be an integer, got {decimals!r}")
    if not 0 <= decimals <= DECIMAL_PRECISION:
        raise PolicyConfigError(
            f"Currency decimals must be between 0 and {DECIMAL_PRECISION}, got {decimals}"
        )
    return CurrencyDetails(name=name, suffix=suffix, decimals=decimals)


class PolicyResolver:
    """Typed, validated access to an instance's configuration.

    Usage:
        resolver = PolicyResolver.from_config_dir(instance / "config")
        policy = resolver.distribution_policy()
    """

    def __init__(
        self,
        grain_config: dict[str, Any],
        currency_config: Optional[dict[str, Any]] = None,
        attributions: Optional[list[PersonalAttribution]] = None,
    ) -> None:
        self._policy = parse_distribution_policy(grain_config)
        self._currency = parse_currency_details(currency_config or {})
        self._attributions = list(attributions or [])

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        grain_path = config_dir / GRAIN_CONFIG
        if not grain_path.exists():
            raise PolicyConfigError(f"Missing grain config: {grain_path}")
        grain_config = _load_json(grain_path)

        currency_path = config_dir / CURRENCY_CONFIG
        currency_config = _load_json(currency_path) if currency_path.exists() else None

        attributions_path = config_dir / ATTRIBUTIONS_CONFIG
        attributions = None
        if attributions_path.exists():
            attributions = parse_personal_attributions(
                attributions_path.read_text(encoding="utf-8")
            )

        return cls(grain_config, currency_config, attributions)

    def distribution_policy(self) -> DistributionPolicy:
        return self._policy

    def currency_details(self) -> CurrencyDetails:
        return self._currency

    def personal_attributions(self) -> list[PersonalAttribution]:
        return list(self._attributions)


def _load_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise PolicyConfigError(f"Invalid JSON in {path}: {exc}") from exc
