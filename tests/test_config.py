import io
import json
import logging
import os
import unittest
from decimal import Decimal
from unittest.mock import patch

from rental_engine.config import Config, _env_bool, setup_logging


class TestConfig(unittest.TestCase):
    def test_env_bool(self):
        with patch.dict(os.environ, {"FLAG_ON": "true", "FLAG_OFF": "no"}):
            self.assertTrue(_env_bool("FLAG_ON", False))
            self.assertFalse(_env_bool("FLAG_OFF", True))
            self.assertTrue(_env_bool("FLAG_MISSING", True))

    def test_price_tolerance(self):
        with patch.object(Config, "PRICE_MISMATCH_TOLERANCE", "0.50"):
            self.assertEqual(Config.price_tolerance(), Decimal("0.50"))

    def test_validate(self):
        self.assertTrue(Config.validate())
        with patch.object(Config, "WEEKEND_POLICY", "sometimes"):
            with self.assertLogs("rental_engine.config", level="WARNING"):
                self.assertFalse(Config.validate())
        with patch.object(Config, "PRICE_MISMATCH_TOLERANCE", "half"):
            with self.assertLogs("rental_engine.config", level="WARNING"):
                self.assertFalse(Config.validate())
        with patch.object(Config, "IDEMPOTENCY_TTL_SECONDS", 0):
            with self.assertLogs("rental_engine.config", level="WARNING"):
                self.assertFalse(Config.validate())


class TestJsonLogging(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        self.saved_handlers = list(root.handlers)
        self.saved_level = root.level

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in self.saved_handlers:
            root.addHandler(handler)
        root.setLevel(self.saved_level)

    def test_records_are_json(self):
        stream = io.StringIO()
        with patch("sys.stdout", stream):
            setup_logging("INFO")
        logging.getLogger("rental_engine.test").info("Booking confirmed", extra={"booking_ref": "bk_1"})

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        self.assertEqual(record["message"], "Booking confirmed")
        self.assertEqual(record["level"], "INFO")
        self.assertEqual(record["booking_ref"], "bk_1")


if __name__ == "__main__":
    unittest.main()
