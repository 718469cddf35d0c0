"""Filesystem helpers for whole-file replacement and remote path handling."""

import os
import posixpath
import re
from pathlib import Path

_WINDOWS_DRIVE_RE = re.compile(r"^[a-zA-Z]:[\\/]")


def atomic_write_bytes(path, data):
    """Replace ``path`` with ``data`` via a flushed sibling temp file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    try:
        with temp.open("wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(temp, path)
    finally:
        if temp.exists():
            try:
                temp.unlink()
            except OSError:
                pass


def to_posix_path(value):
    """Normalize separators to ``/`` and refuse Windows drive paths."""
    text = str(value)
    if _WINDOWS_DRIVE_RE.match(text):
        raise ValueError(
            f"Windows drive path '{text}' cannot be used with remote storage. "
            "Use server-relative paths like './profiles/SST' or '/profiles/SST'."
        )
    return text.replace("\\", "/")


def resolve_remote_path(remote_root, target_path):
    """Resolve ``target_path`` against ``remote_root``; absolute paths pass through."""
    root = to_posix_path(remote_root or "/")
    target = to_posix_path(target_path)
    if target.startswith("/"):
        return posixpath.normpath(target)
    if target.startswith("./"):
        target = target[2:]
    return posixpath.normpath(posixpath.join(root, target))


def remote_parent_dirs(remote_path):
    """Return each ancestor directory of ``remote_path``, shallowest first."""
    parent = posixpath.dirname(remote_path)
    parts = [part for part in parent.split("/") if part and part != "."]
    prefix = "/" if parent.startswith("/") else ""
    dirs = []
    current = prefix
    for part in parts:
        current = posixpath.join(current, part) if current else part
        dirs.append(current)
    return dirs
