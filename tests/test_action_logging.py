import tempfile
import threading
import unittest
from pathlib import Path
from zoneinfo import ZoneInfo

from flask import Flask

from queuebridge.core import action_logging
from queuebridge.core.action_logging import format_log_line, make_log_action, make_log_exception


class ActionLoggingTests(unittest.TestCase):
    def test_format_outside_request_uses_source_tag(self):
        line = format_log_line("Jan 01 00:00:00", "enqueue", "item_grants\nr1", "bad\r\npayload")
        self.assertEqual(line, "Jan 01 00:00:00 <qbridge> [qbridge/enqueue] item_grants r1 rejected: bad payload")

    def test_reconciler_thread_name_is_the_source(self):
        lines = []
        worker = threading.Thread(
            target=lambda: lines.append(format_log_line("ts", "reconcile-skip")),
            name="reconcile-item_grants",
        )
        worker.start()
        worker.join()
        self.assertEqual(lines, ["ts <reconcile-item_grants> [qbridge/reconcile-skip]"])

    def test_request_client_address_is_the_source(self):
        app = Flask(__name__)
        with app.test_request_context("/api/queues", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}):
            self.assertEqual(format_log_line("ts", "enqueue", "r1"), "ts <203.0.113.9> [qbridge/enqueue] r1")
        with app.test_request_context("/api/queues", environ_base={"REMOTE_ADDR": "10.0.0.7"}):
            self.assertEqual(format_log_line("ts", "enqueue"), "ts <10.0.0.7> [qbridge/enqueue]")

    def test_log_action_appends_and_rotates(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp) / "logs"
            log_file = log_dir / "qbridge.log"
            log_action = make_log_action(ZoneInfo("UTC"), log_dir, log_file)
            log_action("reconcile", command="r1")
            self.assertIn("[qbridge/reconcile] r1", log_file.read_text(encoding="utf-8"))

            (log_dir / "qbridge.log.1").write_text("older\n", encoding="utf-8")
            action_logging._rotate_log_file(log_file, max_bytes=1, backup_count=2)
            self.assertIn("r1", (log_dir / "qbridge.log.1").read_text(encoding="utf-8"))
            self.assertEqual((log_dir / "qbridge.log.2").read_text(encoding="utf-8"), "older\n")
            self.assertFalse(log_file.exists())

    def test_log_exception_includes_type_and_traceback(self):
        seen = []

        def _log_action(action, command=None, rejection_message=None):
            seen.append((action, rejection_message))

        log_exception = make_log_exception(_log_action)
        try:
            raise RuntimeError("sftp dropped")
        except RuntimeError as exc:
            log_exception("reconcile/item_grants", exc)
        action, message = seen[0]
        self.assertEqual(action, "error")
        self.assertTrue(message.startswith("reconcile/item_grants: RuntimeError: sftp dropped | traceback:"))

    def test_unwritable_log_dir_is_ignored(self):
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "file"
            blocker.write_text("x", encoding="utf-8")
            log_action = make_log_action(ZoneInfo("UTC"), blocker / "logs", blocker / "logs" / "a.log")
            log_action("enqueue", command="r1")


if __name__ == "__main__":
    unittest.main()
