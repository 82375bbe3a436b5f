"""Persistence — byte-addressed storage adapters for the ledger and projections."""

from credgrain.persistence.storage import (
    DataStorage,
    DiskStorage,
    MemoryStorage,
    PathTraversalError,
    StorageError,
    StorageKeyNotFoundError,
    WritableDataStorage,
    from_byte_string,
    to_byte_string,
)

__all__ = [
    "DataStorage",
    "DiskStorage",
    "MemoryStorage",
    "PathTraversalError",
    "StorageError",
    "StorageKeyNotFoundError",
    "WritableDataStorage",
    "from_byte_string",
    "to_byte_string",
]
