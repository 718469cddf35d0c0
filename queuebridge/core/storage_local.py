"""Local-disk storage backend."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from queuebridge.core.errors import StorageError, StorageNotFound
from queuebridge.core.filesystem_utils import atomic_write_bytes
from queuebridge.core.storage_core import StorageBackend, StorageStat


class LocalStorage(StorageBackend):
    """Files under ``base_dir``; absolute paths are used as-is."""

    backend = "local"

    def __init__(self, base_dir=None):
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def _resolve(self, path):
        candidate = Path(path)
        if self.base_dir is not None and not candidate.is_absolute():
            return self.base_dir / candidate
        return candidate

    def read(self, path):
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise StorageNotFound(f"No such file: {target}", path=str(target), backend=self.backend) from exc
        except OSError as exc:
            raise StorageError(f"Read failed for {target}: {exc}", path=str(target), backend=self.backend) from exc

    def write(self, path, data):
        target = self._resolve(path)
        try:
            atomic_write_bytes(target, data)
        except OSError as exc:
            raise StorageError(f"Write failed for {target}: {exc}", path=str(target), backend=self.backend) from exc

    def stat(self, path):
        target = self._resolve(path)
        try:
            st = target.stat()
        except FileNotFoundError as exc:
            raise StorageNotFound(f"No such file: {target}", path=str(target), backend=self.backend) from exc
        except OSError as exc:
            raise StorageError(f"Stat failed for {target}: {exc}", path=str(target), backend=self.backend) from exc
        return StorageStat(size=st.st_size, mtime=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc))

    def describe(self):
        return {"backend": self.backend, "base_dir": str(self.base_dir or "")}
