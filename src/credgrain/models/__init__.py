"""Core data models for CredGrain."""

from credgrain.models.grain import GrainAmount, GrainUnderflowError
from credgrain.models.identity import Identity, IdentityId
from credgrain.models.distribution import (
    Allocation,
    AllocationPolicyType,
    Distribution,
    Epoch,
    Receipt,
)

__all__ = [
    "GrainAmount",
    "GrainUnderflowError",
    "Identity",
    "IdentityId",
    "Allocation",
    "AllocationPolicyType",
    "Distribution",
    "Epoch",
    "Receipt",
]
