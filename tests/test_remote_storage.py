import ftplib
import os
import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from queuebridge.core import storage_ftp, storage_sftp
from queuebridge.core.errors import StorageError, StorageNotFound
from queuebridge.core.storage_ftp import FtpStorage
from queuebridge.core.storage_sftp import SftpStorage


class SftpStorageTests(unittest.TestCase):
    def _storage(self):
        return SftpStorage(host="sftp.example", username="dayz", password="secret", port=2022, root="/home/dayz")

    def _patched_client(self, sftp):
        client = MagicMock()
        client.open_sftp.return_value = sftp
        return patch.object(storage_sftp.paramiko, "SSHClient", return_value=client), client

    def test_requires_credentials(self):
        with self.assertRaises(ValueError):
            SftpStorage(host="sftp.example", username="", password="x")

    def test_read_resolves_path_under_root(self):
        sftp = MagicMock()
        sftp.getfo.side_effect = lambda remote, buffer: buffer.write(b'{"requests": []}')
        patcher, client = self._patched_client(sftp)
        with patcher:
            data = self._storage().read("./profiles/SST/api/item_grants.json")
        self.assertEqual(data, b'{"requests": []}')
        self.assertEqual(sftp.getfo.call_args[0][0], "/home/dayz/profiles/SST/api/item_grants.json")
        client.connect.assert_called_once()
        self.assertEqual(client.connect.call_args.kwargs["port"], 2022)
        client.close.assert_called_once()

    def test_read_missing_file_raises_not_found(self):
        sftp = MagicMock()
        sftp.getfo.side_effect = FileNotFoundError(2, "No such file")
        patcher, _client = self._patched_client(sftp)
        with patcher, self.assertRaises(StorageNotFound):
            self._storage().read("api/missing.json")

    def test_write_uploads_temp_then_renames(self):
        sftp = MagicMock()
        sftp.stat.side_effect = FileNotFoundError(2, "No such file")
        patcher, _client = self._patched_client(sftp)
        with patcher:
            self._storage().write("api/key_grants.json", b"{}")
        temp = f"/home/dayz/api/.key_grants.json.{os.getpid()}.tmp"
        self.assertEqual([call.args[0] for call in sftp.mkdir.call_args_list], ["/home", "/home/dayz", "/home/dayz/api"])
        self.assertEqual(sftp.putfo.call_args[0][1], temp)
        sftp.posix_rename.assert_called_once_with(temp, "/home/dayz/api/key_grants.json")

    def test_write_falls_back_to_remove_and_rename(self):
        sftp = MagicMock()
        sftp.posix_rename.side_effect = OSError("unsupported")
        patcher, _client = self._patched_client(sftp)
        with patcher:
            self._storage().write("api/key_grants.json", b"{}")
        sftp.remove.assert_called_once_with("/home/dayz/api/key_grants.json")
        sftp.rename.assert_called_once()

    def test_connect_failure_is_storage_error(self):
        client = MagicMock()
        client.connect.side_effect = OSError("connection refused")
        with patch.object(storage_sftp.paramiko, "SSHClient", return_value=client):
            with self.assertRaises(StorageError) as caught:
                self._storage().read("api/x.json")
        self.assertEqual(caught.exception.backend, "sftp")
        client.close.assert_called_once()

    def test_stat_reports_size_and_utc_mtime(self):
        sftp = MagicMock()
        sftp.stat.return_value = SimpleNamespace(st_size=42, st_mtime=1767268800)
        patcher, _client = self._patched_client(sftp)
        with patcher:
            stat = self._storage().stat("api/x.json")
        self.assertEqual(stat.size, 42)
        self.assertEqual(stat.mtime, datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


class FtpStorageTests(unittest.TestCase):
    def _storage(self, secure=False):
        return FtpStorage(host="ftp.example", user="dayz", password="secret", root="/srv", secure=secure)

    def test_backend_name_follows_secure_flag(self):
        self.assertEqual(self._storage().backend, "ftp")
        self.assertEqual(self._storage(secure=True).backend, "ftps")

    def test_read_collects_retr_chunks(self):
        ftp = MagicMock()

        def _retr(command, callback):
            callback(b'{"requests": ')
            callback(b"[]}")

        ftp.retrbinary.side_effect = _retr
        with patch.object(storage_ftp.ftplib, "FTP", return_value=ftp):
            data = self._storage().read("api/item_grants.json")
        self.assertEqual(data, b'{"requests": []}')
        self.assertEqual(ftp.retrbinary.call_args[0][0], "RETR /srv/api/item_grants.json")
        ftp.login.assert_called_once_with("dayz", "secret")
        ftp.quit.assert_called_once()

    def test_read_550_is_not_found(self):
        ftp = MagicMock()
        ftp.retrbinary.side_effect = ftplib.error_perm("550 No such file or directory")
        with patch.object(storage_ftp.ftplib, "FTP", return_value=ftp):
            with self.assertRaises(StorageNotFound):
                self._storage().read("api/item_grants.json")

    def test_other_reply_is_storage_error(self):
        ftp = MagicMock()
        ftp.retrbinary.side_effect = ftplib.error_temp("421 Too many connections")
        with patch.object(storage_ftp.ftplib, "FTP", return_value=ftp):
            with self.assertRaises(StorageError) as caught:
                self._storage().read("api/item_grants.json")
        self.assertNotIsInstance(caught.exception, StorageNotFound)

    def test_write_stores_temp_then_renames_over_existing(self):
        ftp = MagicMock()
        ftp.rename.side_effect = [ftplib.error_perm("553 File exists"), None]
        with patch.object(storage_ftp.ftplib, "FTP", return_value=ftp):
            self._storage().write("api/item_grants.json", b"{}")
        temp = f"/srv/api/.item_grants.json.{os.getpid()}.tmp"
        self.assertEqual(ftp.storbinary.call_args[0][0], f"STOR {temp}")
        ftp.delete.assert_called_once_with("/srv/api/item_grants.json")
        self.assertEqual(ftp.rename.call_count, 2)

    def test_ftps_enables_protected_data_channel(self):
        ftp = MagicMock()
        ftp.retrbinary.side_effect = lambda command, callback: callback(b"")
        with patch.object(storage_ftp.ftplib, "FTP_TLS", return_value=ftp):
            self._storage(secure=True).read("api/x.json")
        ftp.prot_p.assert_called_once()

    def test_stat_parses_size_and_mdtm(self):
        ftp = MagicMock()
        ftp.size.return_value = 12
        ftp.voidcmd.side_effect = lambda command: "213 20260101120000" if command.startswith("MDTM") else "200 OK"
        with patch.object(storage_ftp.ftplib, "FTP", return_value=ftp):
            stat = self._storage().stat("api/x.json")
        self.assertEqual(stat.size, 12)
        self.assertEqual(stat.mtime, datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


if __name__ == "__main__":
    unittest.main()
