"""Byte-addressed storage — the only path by which state reaches disk.

DataStorage is a low-level interface to data that is not already in
process memory: `get` returns the bytes stored under a key and raises
StorageKeyNotFoundError if there are none. WritableDataStorage adds
`set`, which overwrites unconditionally.

DiskStorage maps keys to files under a fixed base directory. Every key
is resolved and checked against the base before any I/O; a key that
would escape it (`../`, absolute paths, symlinks pointing outside)
raises PathTraversalError and nothing is read or written. Writes land
in a temporary file beside the target and are renamed into place, so a
failed write never leaves a partial file behind. Any other OS-level
failure is raised as StorageError.
"""

from __future__ import annotations

import abc
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base class for storage failures."""


class StorageKeyNotFoundError(StorageError, LookupError):
    def __init__(self, key: str) -> None:
        super().__init__(f"No data stored under key: {key}")
        self.key = key


class PathTraversalError(StorageError, PermissionError):
    def __init__(self, key: str) -> None:
        super().__init__(
            f"Path construction error; key {key!r} resolves outside the "
            f"storage base (possible path traversal attack)"
        )
        self.key = key


class DataStorage(abc.ABC):
    @abc.abstractmethod
    def get(self, key: str) -> bytes:
        """Return the bytes stored under key, or raise StorageKeyNotFoundError."""


class WritableDataStorage(DataStorage):
    @abc.abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store value under key, replacing anything already there."""


def to_byte_string(text: str) -> bytes:
    return text.encode("utf-8")


def from_byte_string(data: bytes) -> str:
    return data.decode("utf-8")


def get_with_default(storage: DataStorage, key: str, default: bytes) -> bytes:
    """Read a key, falling back to `default` when nothing is stored yet."""
    try:
        return storage.get(key)
    except StorageKeyNotFoundError:
        return default


class DiskStorage(WritableDataStorage):
    """File-backed storage confined to a base directory.

    Usage:
        storage = DiskStorage(instance_dir)
        storage.set("data/ledger.json", to_byte_string(ledger.serialize()))
        text = from_byte_string(storage.get("data/ledger.json"))
    """

    def __init__(self, base_path: Optional[Union[str, Path]] = None) -> None:
        base = Path(base_path) if base_path is not None else Path.cwd()
        self._base_path = base.resolve()

    @property
    def base_path(self) -> Path:
        return self._base_path

    def get(self, key: str) -> bytes:
        path = self._check_path_prefix(key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise StorageKeyNotFoundError(key) from None
        except OSError as exc:
            raise StorageError(f"Could not read key {key!r}: {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        path = self._check_path_prefix(key)
        if path == self._base_path:
            raise StorageError(f"Key {key!r} names the storage base itself")
        try:
            self._write_atomic(path, value)
        except OSError as exc:
            raise StorageError(f"Could not write key {key!r}: {exc}") from exc
        logger.debug("Wrote %d bytes to %s", len(value), path)

    def _write_atomic(self, path: Path, value: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _check_path_prefix(self, key: str) -> Path:
        """Resolve a key under the base path, refusing anything outside it."""
        full_path = (self._base_path / key).resolve()
        if full_path != self._base_path and self._base_path not in full_path.parents:
            raise PathTraversalError(key)
        return full_path


class MemoryStorage(WritableDataStorage):
    """In-process storage with the same contract as DiskStorage."""

    def __init__(self, initial: Optional[dict[str, bytes]] = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> bytes:
        try:
            return self._data[key]
        except KeyError:
            raise StorageKeyNotFoundError(key) from None

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return sorted(self._data)
