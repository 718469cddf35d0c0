import tempfile
import unittest
from pathlib import Path

from queuebridge.core.errors import StorageError, StorageNotFound
from queuebridge.core.filesystem_utils import (
    atomic_write_bytes,
    remote_parent_dirs,
    resolve_remote_path,
    to_posix_path,
)
from queuebridge.core.storage_local import LocalStorage


class FileUtilsTests(unittest.TestCase):
    def test_atomic_write_creates_parents_and_leaves_no_temp(self):
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "profiles" / "SST" / "api" / "item_grants.json"
            atomic_write_bytes(target, b'{"requests": []}\n')
            atomic_write_bytes(target, b'{"requests": [1]}\n')
            self.assertEqual(target.read_bytes(), b'{"requests": [1]}\n')
            self.assertEqual([p.name for p in target.parent.iterdir()], ["item_grants.json"])

    def test_to_posix_path_rejects_windows_drive(self):
        self.assertEqual(to_posix_path("profiles\\SST\\api"), "profiles/SST/api")
        with self.assertRaises(ValueError):
            to_posix_path("C:\\DayZServer\\profiles")

    def test_resolve_remote_path(self):
        self.assertEqual(resolve_remote_path("/home/dayz", "./profiles/SST/api/a.json"), "/home/dayz/profiles/SST/api/a.json")
        self.assertEqual(resolve_remote_path("/", "profiles/a.json"), "/profiles/a.json")
        self.assertEqual(resolve_remote_path("/home/dayz", "/abs/a.json"), "/abs/a.json")
        self.assertEqual(resolve_remote_path(".", "./profiles/a.json"), "profiles/a.json")

    def test_remote_parent_dirs(self):
        self.assertEqual(remote_parent_dirs("/a/b/c.json"), ["/a", "/a/b"])
        self.assertEqual(remote_parent_dirs("a/b/c.json"), ["a", "a/b"])
        self.assertEqual(remote_parent_dirs("c.json"), [])


class LocalStorageTests(unittest.TestCase):
    def test_round_trip_relative_to_base_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = LocalStorage(tmp)
            storage.write("api/x.json", b"payload")
            self.assertEqual(storage.read("api/x.json"), b"payload")
            self.assertEqual((Path(tmp) / "api" / "x.json").read_bytes(), b"payload")
            stat = storage.stat("api/x.json")
            self.assertEqual(stat.size, 7)
            self.assertIsNotNone(stat.mtime.tzinfo)

    def test_missing_file_raises_not_found(self):
        with tempfile.TemporaryDirectory() as tmp:
            storage = LocalStorage(tmp)
            with self.assertRaises(StorageNotFound):
                storage.read("nope.json")
            with self.assertRaises(StorageNotFound):
                storage.stat("nope.json")

    def test_unreadable_path_raises_storage_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "dir.json").mkdir()
            storage = LocalStorage(tmp)
            with self.assertRaises(StorageError) as caught:
                storage.read("dir.json")
            self.assertNotIsInstance(caught.exception, StorageNotFound)
            self.assertEqual(caught.exception.backend, "local")


if __name__ == "__main__":
    unittest.main()
