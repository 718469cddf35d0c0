import json
import re
import unittest
from datetime import datetime, timezone

from queuebridge.core.errors import MalformedDocument
from queuebridge.core.queue_records import (
    build_result_record,
    decode_document,
    encode_document,
    is_processed,
    mark_processed,
    new_request_id,
    normalize_status,
    parse_timestamp,
    utc_now_iso,
)


class RecordCodecTests(unittest.TestCase):
    def test_decode_tolerates_empty_and_missing_key(self):
        self.assertEqual(decode_document(b""), [])
        self.assertEqual(decode_document(b"  \n"), [])
        self.assertEqual(decode_document(b"{}"), [])
        self.assertEqual(decode_document('{"requests": [{"requestId": "a"}, 5, null]}'), [{"requestId": "a"}])

    def test_decode_strips_utf8_bom(self):
        self.assertEqual(decode_document('\ufeff{"requests": []}'.encode("utf-8")), [])

    def test_decode_rejects_malformed(self):
        for body in (b"{truncated", b"[]", b'{"requests": {}}', b"\xff\xfe"):
            with self.subTest(body=body), self.assertRaises(MalformedDocument):
                decode_document(body)

    def test_encode_is_indented_utf8_with_requests_key(self):
        data = encode_document([{"requestId": "r1", "message": "héllo"}])
        text = data.decode("utf-8")
        self.assertTrue(text.endswith("\n"))
        self.assertIn('\n  "requests": [', text)
        self.assertIn("héllo", text)
        self.assertEqual(json.loads(text), {"requests": [{"requestId": "r1", "message": "héllo"}]})


class RecordFieldTests(unittest.TestCase):
    def test_request_id_shape(self):
        rid = new_request_id("grant")
        self.assertRegex(rid, r"^grant_\d{13}_[0-9a-f]{12}$")
        self.assertNotEqual(rid, new_request_id("grant"))
        self.assertTrue(new_request_id("").startswith("req_"))

    def test_timestamps_are_utc_with_millis(self):
        stamp = utc_now_iso(datetime(2026, 3, 4, 5, 6, 7, 891000, tzinfo=timezone.utc))
        self.assertEqual(stamp, "2026-03-04T05:06:07.891Z")
        self.assertTrue(re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", utc_now_iso()))
        self.assertEqual(parse_timestamp(stamp), datetime(2026, 3, 4, 5, 6, 7, 891000, tzinfo=timezone.utc))
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(None))

    def test_status_normalization_covers_legacy_spellings(self):
        self.assertEqual(normalize_status({"status": "completed"}), "success")
        self.assertEqual(normalize_status({"status": "SUCCESS"}), "success")
        self.assertEqual(normalize_status({"status": "failed", "result": "Player not online"}), "failed")
        self.assertEqual(normalize_status({"status": "pending"}), "pending")
        self.assertEqual(normalize_status({"processed": True, "result": "SUCCESS"}), "success")
        self.assertEqual(normalize_status({"processed": True, "result": "PLAYER_NOT_FOUND"}), "failed")
        self.assertEqual(normalize_status({"processed": False, "result": ""}), "pending")

    def test_is_processed(self):
        self.assertTrue(is_processed({"processed": True}))
        self.assertFalse(is_processed({"processed": False, "status": "pending"}))
        self.assertTrue(is_processed({"status": "completed"}))
        self.assertFalse(is_processed({}))

    def test_result_record_from_processed_request(self):
        record = {"requestId": " r1 ", "playerId": "765", "processed": False, "status": "pending", "result": ""}
        mark_processed(record, status="success", message="SUCCESS", processed_at="2026-01-01T00:00:00.000Z")
        result = build_result_record(record)
        self.assertEqual(result["requestId"], "r1")
        self.assertEqual(result["status"], "success")
        self.assertEqual(result["result"], "SUCCESS")
        self.assertEqual(result["processedAt"], "2026-01-01T00:00:00.000Z")
        self.assertTrue(result["processed"])
        self.assertEqual(result["playerId"], "765")


if __name__ == "__main__":
    unittest.main()
