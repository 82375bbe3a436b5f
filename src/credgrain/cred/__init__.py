"""Cred input — opaque per-identity weights consumed by the Grain engine."""

from credgrain.cred.view import CredParticipant, CredView, CredViewError

__all__ = ["CredParticipant", "CredView", "CredViewError"]
