"""
Booking creation on top of the availability resolver and the pricing engine.

The checkout flow is:

1. quote()            - server-side price for a booking request
2. create_hold()      - short-lived reservation while the customer checks out
3. confirm_booking()  - re-validates hold, availability and client total, then
                        writes the booking

Client-submitted totals are never trusted: confirm_booking() recomputes the
price from catalogue and settings data and rejects the request with
PriceMismatch when the two differ by more than the configured tolerance.
"""

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from ..availability.resolver import AvailabilityResolver, find_overlapping_bookings
from ..availability.sources import ReservationStore
from ..cache import TTLCache
from ..config import Config
from ..errors import DataUnavailable, HoldExpired, PriceMismatch, ValidationError, VehicleUnavailable
from ..models import (
    AddOn,
    BookingConflict,
    BookingRecord,
    BookingRequest,
    BookingStatus,
    DateRange,
    HoldStatus,
    PriceBreakdown,
    PricingInput,
    ReservationHold,
    VehicleOffering,
    to_money,
)
from ..pricing.addons import calculate_add_ons_total
from ..pricing.engine import calculate_booking_pricing
from ..pricing.fees import calculate_delivery_fee, compute_dropoff_fee
from ..pricing.rates import RateConfigService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class BookingService:
    def __init__(self, resolver: AvailabilityResolver, rates: RateConfigService, store: ReservationStore,
                 add_ons: Optional[Iterable[AddOn]] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 price_tolerance: Optional[Decimal] = None,
                 hold_minutes: Optional[int] = None,
                 idempotency_ttl_seconds: Optional[float] = None):
        self.resolver = resolver
        self.rates = rates
        self.store = store
        self.add_ons: List[AddOn] = list(add_ons or [])
        self.clock = clock or _utcnow
        self.price_tolerance = Config.price_tolerance() if price_tolerance is None else Decimal(str(price_tolerance))
        self.hold_minutes = Config.HOLD_DURATION_MINUTES if hold_minutes is None else hold_minutes
        # Serializes the check-then-write in create_hold/confirm_booking.
        # Multi-process deployments also need a storage-level exclusion constraint.
        self._lock = threading.Lock()
        self._confirmed_by_key = TTLCache(
            ttl_seconds=Config.IDEMPOTENCY_TTL_SECONDS if idempotency_ttl_seconds is None else idempotency_ttl_seconds
        )

    # Pricing

    def _get_vehicle(self, vehicle_id: str) -> VehicleOffering:
        try:
            vehicle = self.resolver.vehicles.get_vehicle(vehicle_id)
        except Exception as e:
            logger.error(f"Vehicle lookup failed for {vehicle_id}: {e}")
            raise DataUnavailable(f"Vehicle lookup failed: {vehicle_id}") from e
        if vehicle is None:
            raise ValidationError(f"Unknown vehicle: {vehicle_id}", details={"vehicle_id": vehicle_id})
        return vehicle

    def quote(self, request: BookingRequest) -> PriceBreakdown:
        """Server-computed price for a booking request."""
        date_range = request.date_range()
        rental_days = date_range.rental_days()
        vehicle = self._get_vehicle(request.vehicle_id)

        protection = self.rates.get_protection_rate(request.protection_plan, vehicle.category)
        add_ons = calculate_add_ons_total(
            self.add_ons, request.add_ons, rental_days,
            vehicle=vehicle, protection_plan=request.protection_plan,
        )

        delivery_fee = Decimal("0")
        if request.delivery_distance_km is not None:
            delivery = calculate_delivery_fee(request.delivery_distance_km)
            if not delivery.is_within_range:
                raise ValidationError(
                    "Delivery is not available at this distance",
                    details={"delivery_distance_km": request.delivery_distance_km},
                )
            delivery_fee = delivery.fee

        pricing_input = PricingInput(
            vehicle_daily_rate=vehicle.daily_rate,
            rental_days=rental_days,
            protection_daily_rate=protection.daily_rate,
            protection_name=protection.name,
            add_ons_total=add_ons.total,
            delivery_fee=delivery_fee,
            dropoff_fee=compute_dropoff_fee(request.location_id, request.return_location_id),
            driver_age_band=request.driver_age_band,
            pickup_date=date_range.start,
            additional_drivers=[driver.age_band for driver in request.additional_drivers],
        )
        breakdown = calculate_booking_pricing(pricing_input, self.rates.pricing_policy())
        if breakdown is None:
            raise DataUnavailable(f"Pricing data incomplete for vehicle {vehicle.id}")
        return breakdown

    def validate_client_total(self, request: BookingRequest, client_total) -> PriceBreakdown:
        """
        Recompute the price and compare it with the total the client displayed.

        Raises:
            PriceMismatch: the totals differ by more than the tolerance. The
                error carries the server breakdown so the UI can show it.
        """
        breakdown = self.quote(request)
        server_total = to_money(breakdown.total)
        client = to_money(client_total)
        if abs(server_total - client) > self.price_tolerance:
            logger.warning(
                f"Price mismatch for vehicle {request.vehicle_id}: server {server_total}, client {client}"
            )
            raise PriceMismatch(server_total=server_total, client_total=client, breakdown=breakdown)
        return breakdown

    # Holds

    def create_hold(self, vehicle_id: str, date_range: DateRange) -> ReservationHold:
        """Reserve a vehicle for the checkout window."""
        vehicle = self._get_vehicle(vehicle_id)
        if not vehicle.is_available:
            raise VehicleUnavailable(details={"vehicle_id": vehicle_id})

        with self._lock:
            if not self.resolver.is_available(vehicle_id, date_range):
                raise VehicleUnavailable(details={"vehicle_id": vehicle_id})
            hold = ReservationHold(
                id=_new_id("hold"),
                vehicle_id=vehicle_id,
                start=date_range.start,
                end=date_range.end,
                expires_at=self.clock() + timedelta(minutes=self.hold_minutes),
            )
            self.store.add_hold(hold)
        logger.info(f"Hold {hold.id} on vehicle {vehicle_id} until {hold.expires_at.isoformat()}")
        return hold

    def release_hold(self, hold_id: str):
        self.store.set_hold_status(hold_id, HoldStatus.RELEASED)
        logger.info(f"Hold {hold_id} released")

    def _check_hold(self, hold_id: str, request: BookingRequest) -> ReservationHold:
        hold = self.store.get_hold(hold_id)
        if hold is None or not hold.is_live(self.clock()):
            raise HoldExpired(details={"hold_id": hold_id})
        if hold.vehicle_id != request.vehicle_id:
            raise ValidationError("Hold belongs to another vehicle", details={"hold_id": hold_id})
        return hold

    # Confirmation

    def _previous_booking(self, idempotency_key: Optional[str]) -> Optional[BookingRecord]:
        if not idempotency_key:
            return None
        record = self._confirmed_by_key.get(idempotency_key)
        if record is not None:
            logger.info(f"Returning existing booking for idempotency key {idempotency_key}")
        return record

    def confirm_booking(self, request: BookingRequest, client_total, hold_id: Optional[str] = None,
                        idempotency_key: Optional[str] = None) -> BookingRecord:
        """
        Create a confirmed booking.

        Args:
            request: What is being booked.
            client_total: Total the customer saw and agreed to.
            hold_id: Reservation hold taken at the start of checkout, if any.
            idempotency_key: Retries with the same key return the first booking.

        Raises:
            HoldExpired, PriceMismatch, VehicleUnavailable, ValidationError, DataUnavailable
        """
        previous = self._previous_booking(idempotency_key)
        if previous is not None:
            return previous

        if hold_id:
            self._check_hold(hold_id, request)
        breakdown = self.validate_client_total(request, client_total)
        date_range = request.date_range()

        with self._lock:
            # A concurrent retry may have committed while this one was pricing
            previous = self._previous_booking(idempotency_key)
            if previous is not None:
                return previous

            if not self.resolver.is_available(request.vehicle_id, date_range, exclude_hold_id=hold_id):
                raise VehicleUnavailable(details={"vehicle_id": request.vehicle_id})

            record = BookingRecord(
                id=_new_id("bk"),
                vehicle_id=request.vehicle_id,
                start=date_range.start,
                end=date_range.end,
                status=BookingStatus.CONFIRMED,
                **breakdown.to_record(),
            )
            existing = self.resolver.conflicts.get_bookings([record.vehicle_id])
            self.assert_no_overlapping_bookings(existing + [record.as_conflict()])
            self.store.save_booking(record)
            if hold_id:
                self.store.set_hold_status(hold_id, HoldStatus.CONVERTED)
            if idempotency_key:
                self._confirmed_by_key.put(idempotency_key, record)

        logger.info(
            f"Booking confirmed for vehicle {record.vehicle_id}, total ${record.total_amount}",
            extra={"booking_ref": record.id},
        )
        return record

    def assert_no_overlapping_bookings(self, bookings: Iterable[BookingConflict]):
        """Raise if any vehicle holds two overlapping blocking bookings."""
        pairs = find_overlapping_bookings(bookings)
        if pairs:
            first, second = pairs[0]
            logger.error(f"Double booking detected on vehicle {first.vehicle_id}")
            raise VehicleUnavailable(
                f"Overlapping bookings on vehicle {first.vehicle_id}",
                details={
                    "vehicle_id": first.vehicle_id,
                    "bookings": [first.booking_id, second.booking_id],
                    "overlaps": len(pairs),
                },
            )
