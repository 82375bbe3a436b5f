"""Operational tools run from the CLI."""
