"""FTP/FTPS storage backend (one control connection per operation)."""

from __future__ import annotations

import ftplib
import io
import os
import posixpath
from contextlib import contextmanager
from datetime import datetime, timezone

from queuebridge.core.errors import StorageError, StorageNotFound
from queuebridge.core.filesystem_utils import remote_parent_dirs, resolve_remote_path
from queuebridge.core.storage_core import StorageBackend, StorageStat

FTP_CONNECT_TIMEOUT_SECONDS = 20
_FTP_ERRORS = (ftplib.Error, OSError, EOFError)


def _is_not_found(exc):
    # 550 is the usual "not found / no access" reply.
    if isinstance(exc, ftplib.error_perm):
        return str(exc).startswith("550")
    return "not found" in str(exc).lower()


def _parse_mdtm(reply):
    """Parse ``213 YYYYMMDDHHMMSS[.sss]`` into an aware UTC datetime."""
    stamp = str(reply or "").split()[-1] if reply else ""
    stamp = stamp.split(".")[0]
    try:
        return datetime.strptime(stamp, "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)


class FtpStorage(StorageBackend):
    """Read/write files on an FTP or FTPS server under ``root``."""

    def __init__(self, *, host, user, password, port=21, root="/", secure=False):
        if not host or not user or not password:
            raise ValueError(
                "FTP backend requires host/user/password. Set FTP_HOST, FTP_USER, FTP_PASSWORD "
                "or provide them in the host provider config file."
            )
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.root = root or "/"
        self.secure = bool(secure)
        self.backend = "ftps" if self.secure else "ftp"

    @contextmanager
    def _session(self):
        ftp = ftplib.FTP_TLS(timeout=FTP_CONNECT_TIMEOUT_SECONDS) if self.secure else ftplib.FTP(timeout=FTP_CONNECT_TIMEOUT_SECONDS)
        try:
            ftp.connect(self.host, self.port)
            ftp.login(self.user, self.password)
            if self.secure:
                ftp.prot_p()
        except _FTP_ERRORS as exc:
            ftp.close()
            raise StorageError(f"FTP connect to {self.host}:{self.port} failed: {exc}", backend=self.backend) from exc
        try:
            yield ftp
        finally:
            try:
                ftp.quit()
            except _FTP_ERRORS:
                ftp.close()

    def _remote(self, path):
        return resolve_remote_path(self.root, path)

    def read(self, path):
        remote = self._remote(path)
        with self._session() as ftp:
            buffer = io.BytesIO()
            try:
                ftp.retrbinary(f"RETR {remote}", buffer.write)
            except _FTP_ERRORS as exc:
                if _is_not_found(exc):
                    raise StorageNotFound(f"No such file: {remote}", path=remote, backend=self.backend) from exc
                raise StorageError(f"FTP read failed for {remote}: {exc}", path=remote, backend=self.backend) from exc
            return buffer.getvalue()

    def _ensure_dirs(self, ftp, remote):
        for directory in remote_parent_dirs(remote):
            try:
                ftp.mkd(directory)
            except ftplib.error_perm:
                # Already exists (or not creatable; the upload reports that).
                continue

    def write(self, path, data):
        remote = self._remote(path)
        temp = posixpath.join(posixpath.dirname(remote), f".{posixpath.basename(remote)}.{os.getpid()}.tmp")
        with self._session() as ftp:
            try:
                self._ensure_dirs(ftp, remote)
                ftp.storbinary(f"STOR {temp}", io.BytesIO(data))
                try:
                    ftp.rename(temp, remote)
                except ftplib.error_perm:
                    # Some servers refuse to rename over an existing file.
                    try:
                        ftp.delete(remote)
                    except ftplib.error_perm as exc:
                        if not _is_not_found(exc):
                            raise
                    ftp.rename(temp, remote)
            except _FTP_ERRORS as exc:
                raise StorageError(f"FTP write failed for {remote}: {exc}", path=remote, backend=self.backend) from exc

    def stat(self, path):
        remote = self._remote(path)
        with self._session() as ftp:
            try:
                ftp.voidcmd("TYPE I")
                size = ftp.size(remote)
                mtime = _parse_mdtm(ftp.voidcmd(f"MDTM {remote}"))
            except _FTP_ERRORS as exc:
                if _is_not_found(exc):
                    raise StorageNotFound(f"No such file: {remote}", path=remote, backend=self.backend) from exc
                raise StorageError(f"FTP stat failed for {remote}: {exc}", path=remote, backend=self.backend) from exc
        return StorageStat(size=int(size or 0), mtime=mtime)

    def describe(self):
        return {"backend": self.backend, "host": self.host, "port": self.port, "root": self.root}
