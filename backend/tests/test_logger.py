import json
import logging
import unittest

from mockup.core.logger import JsonFormatter, TaskLogger


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestJsonLogging(unittest.TestCase):
    def test_task_logger_attaches_trace_and_props(self):
        task = TaskLogger(trace_id="abc123")
        cap = _Capture()
        task.logger.addHandler(cap)
        try:
            task.warning("optional asset absent", asset="shadow", source="assets/bag-shadow.png")
        finally:
            task.logger.removeHandler(cap)

        self.assertEqual(len(cap.records), 1)
        payload = json.loads(JsonFormatter().format(cap.records[0]))
        self.assertEqual(payload["level"], "WARNING")
        self.assertEqual(payload["message"], "optional asset absent")
        self.assertEqual(payload["trace_id"], "abc123")
        self.assertEqual(payload["asset"], "shadow")
        self.assertTrue(payload["timestamp"].endswith("Z"))


if __name__ == "__main__":
    unittest.main()
