"""Car rental availability and pricing engine."""

from .config import Config, setup_logging
from .errors import (
    RentalError,
    ValidationError,
    DataUnavailable,
    VehicleUnavailable,
    HoldExpired,
    PriceMismatch,
)
from .availability import AvailabilityResolver, InMemoryFleetStore
from .booking import BookingService
from .pricing import PricingPolicy, RateConfigService, calculate_booking_pricing

__version__ = "0.1.0"
