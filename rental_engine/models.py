from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import ValidationError
from .utils.dates import local_date_of, ranges_overlap, rental_days_between, to_aware

MIN_RENTAL_DAYS = 1
MAX_RENTAL_DAYS = 30
DEFAULT_CLEANING_BUFFER_HOURS = 2

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Any) -> Decimal:
    """Quantize to cents (half-up). Only used when a value leaves the engine."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Any) -> str:
    return f"{to_money(value):.2f}"


# Vehicles and date ranges

class VehicleOffering(BaseModel):
    id: str
    category: str
    daily_rate: Decimal = Field(..., ge=0)
    seats: Optional[int] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    is_available: bool = True
    cleaning_buffer_hours: Optional[int] = Field(default=DEFAULT_CLEANING_BUFFER_HOURS, ge=0)
    tank_capacity_liters: Optional[Decimal] = None
    location_id: Optional[str] = Field(None, description="None means the vehicle can be rented at every location")
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None

    @property
    def buffer_hours(self) -> int:
        # 0/None in fleet data means "use the default buffer"
        return self.cleaning_buffer_hours or DEFAULT_CLEANING_BUFFER_HOURS


class DateRange(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_bounds(self):
        if to_aware(self.end) <= to_aware(self.start):
            raise ValidationError(
                "Rental end must be after rental start",
                details={"start": self.start.isoformat(), "end": self.end.isoformat()},
            )
        days = rental_days_between(self.start, self.end)
        if days > MAX_RENTAL_DAYS:
            raise ValidationError(
                f"Maximum rental is {MAX_RENTAL_DAYS} days",
                details={"rental_days": days},
            )
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Inclusive overlap: touching endpoints count as a conflict."""
        return ranges_overlap(start, end, self.start, self.end)

    def rental_days(self) -> int:
        return rental_days_between(self.start, self.end)


class AvailabilityFilters(BaseModel):
    category: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    seats: Optional[int] = None
    transmission: Optional[str] = None
    fuel_type: Optional[str] = None

    def matches(self, vehicle: VehicleOffering) -> bool:
        if self.category and vehicle.category != self.category:
            return False
        if self.min_price is not None and vehicle.daily_rate < self.min_price:
            return False
        if self.max_price is not None and vehicle.daily_rate > self.max_price:
            return False
        if self.seats is not None and (vehicle.seats or 0) < self.seats:
            return False
        if self.transmission and vehicle.transmission != self.transmission:
            return False
        if self.fuel_type and vehicle.fuel_type != self.fuel_type:
            return False
        return True


# Bookings and holds

class BookingStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


BLOCKING_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.ACTIVE})
BUFFER_BOOKING_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.ACTIVE})


class BookingConflict(BaseModel):
    vehicle_id: str
    start: datetime
    end: datetime
    status: BookingStatus
    booking_id: Optional[str] = None


class HoldStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"
    CONVERTED = "converted"
    EXPIRED = "expired"


class ReservationHold(BaseModel):
    id: str
    vehicle_id: str
    start: datetime
    end: datetime
    expires_at: datetime
    status: HoldStatus = HoldStatus.ACTIVE

    def is_live(self, now: datetime) -> bool:
        return self.status == HoldStatus.ACTIVE and to_aware(self.expires_at) > to_aware(now)


# Protection, drivers, add-ons

class ProtectionPlan(str, Enum):
    NONE = "none"
    BASIC = "basic"
    SMART = "smart"
    PREMIUM = "premium"


class ProtectionGroup(IntEnum):
    GROUP_1 = 1
    GROUP_2 = 2
    GROUP_3 = 3


class ProtectionPackage(BaseModel):
    plan: ProtectionPlan
    name: str
    daily_rate: Decimal
    deductible: str


class DriverAgeBand(str, Enum):
    STANDARD = "25_70"
    YOUNG = "20_24"


def age_range_to_age_band(age_range: Optional[str]) -> Optional[DriverAgeBand]:
    """Map the search form's age range ("20-24" / "25-70") to a driver age band."""
    if age_range in ("20-24", "20_24"):
        return DriverAgeBand.YOUNG
    if age_range in ("25-70", "25_70"):
        return DriverAgeBand.STANDARD
    return None


class AdditionalDriver(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    age_band: DriverAgeBand = DriverAgeBand.STANDARD


class AddOn(BaseModel):
    id: str
    name: str
    daily_rate: Decimal = ZERO
    one_time_fee: Decimal = ZERO
    is_fuel: bool = False
    included_in_premium: bool = False


class AddOnSelection(BaseModel):
    add_on_id: str
    quantity: int = 1


# Pricing

class DiscountType(str, Enum):
    NONE = "none"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PricingInput(BaseModel):
    vehicle_daily_rate: Optional[Decimal]
    rental_days: int
    protection_daily_rate: Optional[Decimal] = ZERO
    add_ons_total: Decimal = ZERO
    delivery_fee: Decimal = ZERO
    driver_age_band: Optional[DriverAgeBand] = None
    pickup_date: Optional[date] = None
    additional_drivers: List[DriverAgeBand] = Field(default_factory=list)
    dropoff_fee: Decimal = ZERO
    protection_name: Optional[str] = None

    @field_validator("pickup_date", mode="before")
    @classmethod
    def _date_only(cls, value):
        if value is None:
            return None
        return local_date_of(value)


class LineItem(BaseModel):
    code: str
    label: str
    amount: Decimal
    included_in_total: bool = True


class PriceBreakdown(BaseModel):
    line_items: List[LineItem]
    rental_days: int
    daily_rate: Decimal
    discount_type: DiscountType = DiscountType.NONE
    subtotal: Decimal
    regulatory_fees: Decimal
    pst: Decimal
    gst: Decimal
    tax_amount: Decimal
    total: Decimal
    deposit_amount: Decimal

    def amount_of(self, code: str) -> Decimal:
        """Amount of the line item with this code, 0 when absent."""
        for item in self.line_items:
            if item.code == code:
                return item.amount
        return ZERO

    def has_item(self, code: str) -> bool:
        return any(item.code == code for item in self.line_items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_items": [
                {
                    "code": item.code,
                    "label": item.label,
                    "amount": format_money(item.amount),
                    "included_in_total": item.included_in_total,
                }
                for item in self.line_items
            ],
            "rental_days": self.rental_days,
            "daily_rate": format_money(self.daily_rate),
            "discount_type": self.discount_type.value,
            "subtotal": format_money(self.subtotal),
            "regulatory_fees": format_money(self.regulatory_fees),
            "pst": format_money(self.pst),
            "gst": format_money(self.gst),
            "tax_amount": format_money(self.tax_amount),
            "total": format_money(self.total),
            "deposit_amount": format_money(self.deposit_amount),
        }

    def to_record(self) -> Dict[str, Any]:
        """Named numeric fields written onto the booking record."""
        return {
            "total_amount": to_money(self.total),
            "total_days": self.rental_days,
            "daily_rate": to_money(self.daily_rate),
            "subtotal": to_money(self.subtotal),
            "tax_amount": to_money(self.tax_amount),
            "deposit_amount": to_money(self.deposit_amount),
            "young_driver_fee": to_money(self.amount_of("young_driver_fee")),
            "delivery_fee": to_money(self.amount_of("delivery_fee")),
            "different_dropoff_fee": to_money(self.amount_of("dropoff_fee")),
        }


# Booking requests and records

class BookingRequest(BaseModel):
    vehicle_id: str
    location_id: Optional[str] = None
    return_location_id: Optional[str] = None
    start: datetime
    end: datetime
    protection_plan: ProtectionPlan = ProtectionPlan.NONE
    add_ons: List[AddOnSelection] = Field(default_factory=list)
    driver_age_band: Optional[DriverAgeBand] = None
    additional_drivers: List[AdditionalDriver] = Field(default_factory=list, max_length=5)
    delivery_distance_km: Optional[float] = Field(None, ge=0)

    def date_range(self) -> DateRange:
        return DateRange(start=self.start, end=self.end)


class BookingRecord(BaseModel):
    id: str
    vehicle_id: str
    start: datetime
    end: datetime
    status: BookingStatus
    total_amount: Decimal
    total_days: int
    daily_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    deposit_amount: Decimal
    young_driver_fee: Decimal
    delivery_fee: Decimal
    different_dropoff_fee: Decimal

    def as_conflict(self) -> BookingConflict:
        return BookingConflict(
            vehicle_id=self.vehicle_id,
            start=self.start,
            end=self.end,
            status=self.status,
            booking_id=self.id,
        )
