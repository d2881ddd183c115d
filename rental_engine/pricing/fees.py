"""
Fees computed outside the main pricing pass.

Delivery and drop-off fees are computed here and handed to the pricing engine
as flat amounts. The two tables are unrelated: delivery is tiered by the
distance from the branch to the customer's address, while the drop-off fee
depends only on the fee groups of the pickup and return branches.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..models import ZERO


class RentalLocation(BaseModel):
    id: str
    name: str
    address: str
    city: str
    lat: float
    lng: float
    fee_group: str


RENTAL_LOCATIONS: List[RentalLocation] = [
    RentalLocation(id="surrey", name="Surrey Centre", address="6734 King George Blvd, Surrey, BC",
                   city="Surrey", lat=49.125002, lng=-122.845219, fee_group="surrey"),
    RentalLocation(id="langley", name="Langley Centre", address="5933 200 St, Langley, BC V3A 1N2",
                   city="Langley", lat=49.102, lng=-122.659, fee_group="langley"),
    RentalLocation(id="abbotsford", name="Abbotsford Centre", address="32835 South Fraser Way, Abbotsford, BC",
                   city="Abbotsford", lat=49.052, lng=-122.287, fee_group="abbotsford"),
]


def get_location_by_id(location_id: Optional[str]) -> Optional[RentalLocation]:
    for location in RENTAL_LOCATIONS:
        if location.id == location_id:
            return location
    return None


# Delivery

class DeliveryTier(BaseModel):
    max_km: float
    fee: Decimal
    label: str


DELIVERY_TIERS: List[DeliveryTier] = [
    DeliveryTier(max_km=10, fee=Decimal("0"), label="Free"),
    DeliveryTier(max_km=50, fee=Decimal("49"), label="$49"),
]

MAX_DELIVERY_DISTANCE_KM = 50


class DeliveryQuote(BaseModel):
    fee: Decimal
    tier: Optional[DeliveryTier] = None
    is_within_range: bool


def calculate_delivery_fee(distance_km: float) -> DeliveryQuote:
    """Delivery fee by distance: <=10 km free, <=50 km $49, beyond that not offered."""
    if distance_km < 0:
        raise ValueError("distance_km must be >= 0")
    if distance_km > MAX_DELIVERY_DISTANCE_KM:
        return DeliveryQuote(fee=ZERO, tier=None, is_within_range=False)

    for tier in DELIVERY_TIERS:
        if distance_km <= tier.max_km:
            return DeliveryQuote(fee=tier.fee, tier=tier, is_within_range=True)

    last = DELIVERY_TIERS[-1]
    return DeliveryQuote(fee=last.fee, tier=last, is_within_range=True)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometers."""
    radius = 6371
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    return radius * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def find_closest_location(lat: float, lng: float) -> Tuple[RentalLocation, float]:
    distances = [(loc, haversine_distance(lat, lng, loc.lat, loc.lng)) for loc in RENTAL_LOCATIONS]
    return min(distances, key=lambda pair: pair[1])


# Different drop-off location

# Keyed by the two fee groups sorted alphabetically and joined with "|"
DROPOFF_FEE_TABLE: Dict[str, Decimal] = {
    "langley|surrey": Decimal("50"),
    "abbotsford|langley": Decimal("75"),
    "abbotsford|surrey": Decimal("75"),
}


def fee_from_groups(pickup_group: Optional[str], return_group: Optional[str],
                    table: Optional[Dict[str, Decimal]] = None) -> Decimal:
    if not pickup_group or not return_group or pickup_group == return_group:
        return ZERO
    pair = "|".join(sorted([pickup_group, return_group]))
    return (table if table is not None else DROPOFF_FEE_TABLE).get(pair, ZERO)


def compute_dropoff_fee(pickup_location_id: Optional[str], return_location_id: Optional[str],
                        table: Optional[Dict[str, Decimal]] = None) -> Decimal:
    """Different-location return fee. Same location or unknown branch -> 0."""
    if not pickup_location_id or not return_location_id or pickup_location_id == return_location_id:
        return ZERO
    pickup = get_location_by_id(pickup_location_id)
    returned = get_location_by_id(return_location_id)
    if pickup is None or returned is None:
        return ZERO
    return fee_from_groups(pickup.fee_group, returned.fee_group, table)


# Late returns and cancellations

LATE_RETURN_GRACE_PERIOD_MINUTES = 15
LATE_RETURN_HOURLY_FEE = Decimal("25")
CANCELLATION_PENALTY_DAYS = 1


class LateReturnInfo(BaseModel):
    is_late: bool
    in_grace_period: bool
    minutes_late: int
    hours_late: int
    fee: Decimal
    message: str


def calculate_late_return_fee(scheduled_end: datetime, actual_return: datetime) -> LateReturnInfo:
    minutes_late = max(0, math.floor((actual_return - scheduled_end).total_seconds() / 60))

    if minutes_late == 0:
        return LateReturnInfo(is_late=False, in_grace_period=False, minutes_late=0, hours_late=0,
                              fee=ZERO, message="Returned on time")

    if minutes_late <= LATE_RETURN_GRACE_PERIOD_MINUTES:
        return LateReturnInfo(is_late=False, in_grace_period=True, minutes_late=minutes_late, hours_late=0,
                              fee=ZERO, message=f"Within {LATE_RETURN_GRACE_PERIOD_MINUTES}-minute grace period")

    # Every started hour after the grace period is billed
    hours_late = math.ceil((minutes_late - LATE_RETURN_GRACE_PERIOD_MINUTES) / 60)
    fee = LATE_RETURN_HOURLY_FEE * hours_late
    return LateReturnInfo(
        is_late=True,
        in_grace_period=False,
        minutes_late=minutes_late,
        hours_late=hours_late,
        fee=fee,
        message=f"{hours_late} hour{'s' if hours_late != 1 else ''} late - CA${fee} fee",
    )


class CancellationFee(BaseModel):
    fee: Decimal
    is_free: bool
    reason: str


def calculate_cancellation_fee(hours_until_pickup: float, daily_rate: Decimal) -> CancellationFee:
    """Free before the pickup time; a no-show pays one day's rental."""
    if hours_until_pickup > 0:
        return CancellationFee(fee=ZERO, is_free=True, reason="Free cancellation (before pickup time)")

    fee = Decimal(str(daily_rate)) * CANCELLATION_PENALTY_DAYS
    return CancellationFee(
        fee=fee,
        is_free=False,
        reason=f"Cancellation after pickup time incurs a {CANCELLATION_PENALTY_DAYS}-day rental penalty (${fee:.2f})",
    )
