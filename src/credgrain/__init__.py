"""CredGrain — append-only Grain accounting driven by Cred scores."""

__version__ = "0.1.0"
