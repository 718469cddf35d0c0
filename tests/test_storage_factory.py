import json
import tempfile
import unittest
from pathlib import Path

from queuebridge.core.provider_config import load_provider_config, select_provider
from queuebridge.core.storage import create_storage, resolve_storage_backend
from queuebridge.core.storage_ftp import FtpStorage
from queuebridge.core.storage_local import LocalStorage
from queuebridge.core.storage_sftp import SftpStorage
from queuebridge.core.web_config import WebConfig


def _cfg(root, environ):
    return WebConfig(Path(root) / "missing.env", root, environ=environ)


class ProviderConfigTests(unittest.TestCase):
    def test_load_returns_none_for_missing_or_malformed(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self.assertIsNone(load_provider_config(""))
            self.assertIsNone(load_provider_config(root / "absent.json"))
            bad = root / "bad.json"
            bad.write_text("{not json", encoding="utf-8")
            self.assertIsNone(load_provider_config(bad))
            listed = root / "list.json"
            listed.write_text("[]", encoding="utf-8")
            self.assertIsNone(load_provider_config(listed))

    def test_select_provider_explicit_name_wins(self):
        config = {"active": "nitrado", "providers": {"nitrado": {"backend": "ftp"}, "gportal": {"backend": "sftp"}}}
        self.assertEqual(select_provider(config)["backend"], "ftp")
        self.assertEqual(select_provider(config, "gportal")["backend"], "sftp")
        self.assertIsNone(select_provider(config, "unknown"))
        self.assertIsNone(select_provider({"providers": {}}))


class StorageFactoryTests(unittest.TestCase):
    def test_defaults_to_local(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = create_storage(_cfg(tmp, {}), base_dir=tmp)
            self.assertIsInstance(storage, LocalStorage)
            self.assertEqual(storage.describe()["backend"], "local")

    def test_invalid_backend_name_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ValueError):
                resolve_storage_backend(_cfg(tmp, {"STORAGE_BACKEND": "s3"}), None)

    def test_env_keys_build_sftp(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = create_storage(_cfg(tmp, {
                "STORAGE_BACKEND": "SFTP",
                "SFTP_HOST": "sftp.example",
                "SFTP_PORT": "2022",
                "SFTP_USER": "dayz",
                "SFTP_PASSWORD": "secret",
                "SFTP_ROOT": "/home/dayz",
            }))
            self.assertIsInstance(storage, SftpStorage)
            self.assertEqual(storage.describe(), {"backend": "sftp", "host": "sftp.example", "port": 2022, "root": "/home/dayz"})

    def test_provider_file_supplies_ftp_settings(self):
        with tempfile.TemporaryDirectory() as tmp:
            provider_path = Path(tmp) / "providers.json"
            provider_path.write_text(json.dumps({
                "active": "nitrado",
                "providers": {
                    "nitrado": {
                        "backend": "ftp",
                        "ftp": {"host": "ftp.example", "port": 2121, "user": "u", "password": "p", "root": "/games", "secure": True},
                    },
                },
            }), encoding="utf-8")
            storage = create_storage(_cfg(tmp, {"SST_API_PROVIDER_CONFIG": str(provider_path), "FTP_PASSWORD": "override"}))
            self.assertIsInstance(storage, FtpStorage)
            self.assertEqual(storage.backend, "ftps")
            self.assertEqual(storage.port, 2121)
            self.assertEqual(storage.root, "/games")
            self.assertEqual(storage.password, "override")

    def test_env_backend_beats_provider_backend(self):
        with tempfile.TemporaryDirectory() as tmp:
            provider_path = Path(tmp) / "providers.json"
            provider_path.write_text(json.dumps({"active": "x", "providers": {"x": {"backend": "sftp"}}}), encoding="utf-8")
            storage = create_storage(_cfg(tmp, {"SST_API_PROVIDER_CONFIG": str(provider_path), "STORAGE_BACKEND": "local"}))
            self.assertIsInstance(storage, LocalStorage)

    def test_remote_backend_without_credentials_fails_fast(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ValueError):
                create_storage(_cfg(tmp, {"STORAGE_BACKEND": "ftp", "FTP_HOST": "ftp.example"}))


if __name__ == "__main__":
    unittest.main()
