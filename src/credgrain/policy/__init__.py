"""Instance configuration — distribution policy and currency settings."""

from credgrain.policy.resolver import (
    CurrencyDetails,
    DistributionPolicy,
    PolicyConfigError,
    PolicyResolver,
)

__all__ = [
    "CurrencyDetails",
    "DistributionPolicy",
    "PolicyConfigError",
    "PolicyResolver",
]
