"""SFTP storage backend (one SSH session per operation)."""

from __future__ import annotations

import errno
import io
import os
import posixpath
from contextlib import contextmanager
from datetime import datetime, timezone

import paramiko

from queuebridge.core.errors import StorageError, StorageNotFound
from queuebridge.core.filesystem_utils import remote_parent_dirs, resolve_remote_path
from queuebridge.core.storage_core import StorageBackend, StorageStat

SFTP_CONNECT_TIMEOUT_SECONDS = 20


def _is_not_found(exc):
    if isinstance(exc, FileNotFoundError):
        return True
    if getattr(exc, "errno", None) == errno.ENOENT:
        return True
    text = str(exc).lower()
    return "no such file" in text or "not exist" in text


class SftpStorage(StorageBackend):
    """Read/write files on an SFTP server under ``root``."""

    backend = "sftp"

    def __init__(self, *, host, username, password, port=22, root="/", strict_host_keys=False):
        if not host or not username or not password:
            raise ValueError(
                "SFTP backend requires host/user/password. Set SFTP_HOST, SFTP_USER, SFTP_PASSWORD "
                "or provide them in the host provider config file."
            )
        self.host = host
        self.port = int(port)
        self.username = username
        self.password = password
        self.root = root or "/"
        self.strict_host_keys = bool(strict_host_keys)

    @contextmanager
    def _session(self):
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        if self.strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=SFTP_CONNECT_TIMEOUT_SECONDS,
                banner_timeout=SFTP_CONNECT_TIMEOUT_SECONDS,
                auth_timeout=SFTP_CONNECT_TIMEOUT_SECONDS,
                look_for_keys=False,
                allow_agent=False,
            )
            sftp = client.open_sftp()
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise StorageError(f"SFTP connect to {self.host}:{self.port} failed: {exc}", backend=self.backend) from exc
        try:
            yield sftp
        finally:
            try:
                sftp.close()
            finally:
                client.close()

    def _remote(self, path):
        return resolve_remote_path(self.root, path)

    def read(self, path):
        remote = self._remote(path)
        with self._session() as sftp:
            buffer = io.BytesIO()
            try:
                sftp.getfo(remote, buffer)
            except (paramiko.SSHException, OSError) as exc:
                if _is_not_found(exc):
                    raise StorageNotFound(f"No such file: {remote}", path=remote, backend=self.backend) from exc
                raise StorageError(f"SFTP read failed for {remote}: {exc}", path=remote, backend=self.backend) from exc
            return buffer.getvalue()

    def _ensure_dirs(self, sftp, remote):
        for directory in remote_parent_dirs(remote):
            try:
                sftp.stat(directory)
            except OSError as exc:
                if not _is_not_found(exc):
                    raise
                sftp.mkdir(directory)

    def write(self, path, data):
        remote = self._remote(path)
        temp = posixpath.join(posixpath.dirname(remote), f".{posixpath.basename(remote)}.{os.getpid()}.tmp")
        with self._session() as sftp:
            try:
                self._ensure_dirs(sftp, remote)
                sftp.putfo(io.BytesIO(data), temp, file_size=len(data), confirm=True)
                try:
                    sftp.posix_rename(temp, remote)
                except OSError:
                    # Server without posix-rename@openssh.com; plain rename refuses to overwrite.
                    try:
                        sftp.remove(remote)
                    except OSError as exc:
                        if not _is_not_found(exc):
                            raise
                    sftp.rename(temp, remote)
            except (paramiko.SSHException, OSError) as exc:
                raise StorageError(f"SFTP write failed for {remote}: {exc}", path=remote, backend=self.backend) from exc

    def stat(self, path):
        remote = self._remote(path)
        with self._session() as sftp:
            try:
                attrs = sftp.stat(remote)
            except (paramiko.SSHException, OSError) as exc:
                if _is_not_found(exc):
                    raise StorageNotFound(f"No such file: {remote}", path=remote, backend=self.backend) from exc
                raise StorageError(f"SFTP stat failed for {remote}: {exc}", path=remote, backend=self.backend) from exc
        mtime = datetime.fromtimestamp(attrs.st_mtime or 0, tz=timezone.utc)
        return StorageStat(size=int(attrs.st_size or 0), mtime=mtime)

    def describe(self):
        return {"backend": self.backend, "host": self.host, "port": self.port, "root": self.root}
