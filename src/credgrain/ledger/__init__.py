"""Ledger subsystem — append-only event ledger and derived read models.

The ledger is the durable source of truth. Cred accounts and run
summaries are derived from it and never written back.
"""

from credgrain.ledger.accounts import CredAccount, CredAccounts, compute_cred_accounts
from credgrain.ledger.events import LedgerEvent, LedgerEventKind
from credgrain.ledger.ledger import Ledger, LedgerError

__all__ = [
    "CredAccount",
    "CredAccounts",
    "compute_cred_accounts",
    "LedgerEvent",
    "LedgerEventKind",
    "Ledger",
    "LedgerError",
]
