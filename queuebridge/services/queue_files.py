"""Single-owner access to one feature's queue and result files."""

from __future__ import annotations

import posixpath
import threading
from dataclasses import dataclass, field
from pathlib import Path

from queuebridge.core.errors import MalformedDocument, StorageNotFound
from queuebridge.core.queue_records import decode_document, encode_document

_path_locks_guard = threading.Lock()
_path_locks = {}


def _lock_for(storage, path):
    """Return the process-wide writer lock for ``path`` on ``storage``."""
    key = (id(storage), str(path))
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _path_locks[key] = lock
        return lock


@dataclass
class DocumentRead:
    """Records decoded from one file, plus whether it existed and any parse problem."""
    records: list = field(default_factory=list)
    exists: bool = False
    diagnostic: str = ""


class QueueFileStore:
    """Reads and writes ``{"requests": [...]}`` documents for queue features.

    Missing files read as empty; malformed files read as empty with a
    diagnostic. ``StorageError`` propagates so the caller can abort.
    """

    def __init__(self, storage, api_dir, *, log_action=None):
        self.storage = storage
        self.api_dir = api_dir
        self.log_action = log_action

    def _join(self, name):
        if isinstance(self.api_dir, Path):
            return self.api_dir / name
        return posixpath.join(str(self.api_dir or "."), name)

    def queue_path(self, feature):
        return self._join(feature.queue_file)

    def result_path(self, feature):
        return self._join(feature.result_file)

    def lock(self, path):
        """Serialize writers of ``path`` inside this process."""
        return _lock_for(self.storage, path)

    def read(self, path):
        try:
            data = self.storage.read(path)
        except StorageNotFound:
            return DocumentRead(records=[], exists=False)
        try:
            records = decode_document(data)
        except MalformedDocument as exc:
            diagnostic = f"{path}: {exc}"
            if callable(self.log_action):
                self.log_action("malformed-document", command=str(path), rejection_message=str(exc))
            return DocumentRead(records=[], exists=True, diagnostic=diagnostic)
        return DocumentRead(records=records, exists=True)

    def write(self, path, records):
        self.storage.write(path, encode_document(records))

    def read_queue(self, feature):
        return self.read(self.queue_path(feature))

    def read_results(self, feature):
        return self.read(self.result_path(feature))
