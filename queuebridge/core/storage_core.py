"""Shared storage interface for queue/result files."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class StorageStat:
    """Size and modification time of one stored file."""
    size: int
    mtime: datetime


class StorageBackend:
    """Whole-file read/write/stat keyed by path.

    ``read`` and ``stat`` raise ``StorageNotFound`` for missing files and
    ``StorageError`` for anything else. ``write`` replaces the entire file.
    No backend offers locking; callers must tolerate racing writers.
    """

    backend = "abstract"

    def read(self, path) -> bytes:
        raise NotImplementedError

    def write(self, path, data: bytes) -> None:
        raise NotImplementedError

    def stat(self, path) -> StorageStat:
        raise NotImplementedError

    def describe(self):
        """Return a short, secret-free description for health output."""
        return {"backend": self.backend}
