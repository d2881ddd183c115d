"""
Typed errors raised by the availability and pricing core.

Each error carries a stable machine-readable ``code`` and a ``user_message``
safe to show in the booking UI. ``to_dict()`` produces the body returned by the
HTTP layer:

    {"error": "PRICE_MISMATCH", "message": "...", "retryable": False, "details": {...}}
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class RentalError(Exception):
    """Base class for all rental engine errors."""

    code = "server_error"
    user_message = "Something went wrong. Please try again."
    retryable = False

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.user_message)
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.user_message,
            "retryable": self.retryable,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }


class ValidationError(RentalError):
    """Malformed input: end <= start, rental days outside [1, 30], negative amounts."""

    code = "validation_failed"
    user_message = "Please check your information and try again."


class DataUnavailable(RentalError):
    """Vehicle, configuration or conflict data could not be fetched."""

    code = "data_unavailable"
    user_message = "Unable to calculate price, please retry."
    retryable = True


class VehicleUnavailable(RentalError):
    code = "vehicle_unavailable"
    user_message = "Not available for these dates."


class HoldExpired(RentalError):
    code = "reservation_expired"
    user_message = "Your reservation has expired. Please start over."


class PriceMismatch(RentalError):
    """A client-submitted total diverged from the server recomputation."""

    code = "PRICE_MISMATCH"
    user_message = "Price updated, please confirm the new total."

    def __init__(self, server_total: Decimal, client_total: Decimal, breakdown=None):
        self.server_total = server_total
        self.client_total = client_total
        self.difference = abs(server_total - client_total)
        self.breakdown = breakdown
        super().__init__(
            f"Price mismatch: expected ${server_total:.2f}, received ${client_total:.2f}",
            details={
                "server_total": server_total,
                "client_total": client_total,
                "difference": self.difference,
            },
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return value
