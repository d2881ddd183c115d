import os
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file in project root
_project_root = Path(__file__).resolve().parent.parent
load_dotenv(_project_root / ".env")

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration management for the rental engine."""

    LOG_LEVEL = os.getenv("RENTAL_LOG_LEVEL", "INFO")

    # Rate configuration lookup
    RATE_CACHE_TTL_SECONDS = int(os.getenv("RATE_CACHE_TTL_SECONDS", "30"))

    # Checkout holds
    HOLD_DURATION_MINUTES = int(os.getenv("HOLD_DURATION_MINUTES", "15"))

    # How long a confirmed booking is replayed for a retried idempotency key
    IDEMPOTENCY_TTL_SECONDS = int(os.getenv("IDEMPOTENCY_TTL_SECONDS", "86400"))

    # Server-side price re-validation
    PRICE_MISMATCH_TOLERANCE = os.getenv("PRICE_MISMATCH_TOLERANCE", "0.50")

    # Pricing policy switches
    TAX_REGULATORY_FEES = _env_bool("TAX_REGULATORY_FEES", False)
    WEEKEND_POLICY = os.getenv("WEEKEND_POLICY", "per_day")

    @classmethod
    def price_tolerance(cls) -> Decimal:
        return Decimal(str(cls.PRICE_MISMATCH_TOLERANCE))

    @classmethod
    def validate(cls):
        """Check configured values, logging anything unusable."""
        problems = []
        if cls.RATE_CACHE_TTL_SECONDS < 0:
            problems.append("RATE_CACHE_TTL_SECONDS must be >= 0")
        if cls.HOLD_DURATION_MINUTES <= 0:
            problems.append("HOLD_DURATION_MINUTES must be > 0")
        if cls.IDEMPOTENCY_TTL_SECONDS <= 0:
            problems.append("IDEMPOTENCY_TTL_SECONDS must be > 0")
        try:
            if cls.price_tolerance() < 0:
                problems.append("PRICE_MISMATCH_TOLERANCE must be >= 0")
        except InvalidOperation:
            problems.append(f"PRICE_MISMATCH_TOLERANCE is not a number: {cls.PRICE_MISMATCH_TOLERANCE!r}")
        if cls.WEEKEND_POLICY not in ("per_day", "pickup_day"):
            problems.append(f"WEEKEND_POLICY must be per_day or pickup_day, got {cls.WEEKEND_POLICY!r}")

        if problems:
            logger.warning(f"Invalid configuration: {'; '.join(problems)}")
            return False
        return True


def setup_logging(level=None):
    """Configure structured JSON logging."""
    import sys

    # Create a handler that writes to stdout
    handler = logging.StreamHandler(sys.stdout)

    # Use a custom formatter for JSON output
    class JsonFormatter(logging.Formatter):
        def format(self, record):
            log_record = {
                "timestamp": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "message": record.getMessage(),
                "module": record.module,
                "function": record.funcName,
            }
            if hasattr(record, "request_id"):
                log_record["request_id"] = record.request_id
            if hasattr(record, "booking_ref"):
                log_record["booking_ref"] = record.booking_ref
            return json.dumps(log_record)

    handler.setFormatter(JsonFormatter())

    # Configure root logger
    root = logging.getLogger()
    root.setLevel(level or Config.LOG_LEVEL)
    # Remove existing handlers to avoid duplication
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
