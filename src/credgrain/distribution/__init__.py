"""Distribution subsystem — policy engine and integer apportionment."""

from credgrain.distribution.apportion import largest_remainder
from credgrain.distribution.engine import DistributionPolicyEngine, apply_distributions

__all__ = ["DistributionPolicyEngine", "apply_distributions", "largest_remainder"]
