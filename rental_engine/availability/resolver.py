"""
Availability resolver.

Decides which vehicles can be booked for a requested window. A vehicle is
excluded when any of these hold:

1. a pending/confirmed/active booking overlaps the window
2. an active, unexpired reservation hold overlaps the window
3. a completed/active booking ended less than the vehicle's cleaning buffer
   before the requested start

Overlap is inclusive: existing.start <= requested.end and
existing.end >= requested.start.

Over-booking is the failure that must never happen, so every data problem
excludes the vehicles it touches instead of letting them through.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from ..models import (
    BLOCKING_BOOKING_STATUSES,
    BUFFER_BOOKING_STATUSES,
    AvailabilityFilters,
    BookingConflict,
    DateRange,
    ReservationHold,
    VehicleOffering,
)
from ..utils.dates import ranges_overlap, to_aware
from .sources import ConflictSource, VehicleSource

logger = logging.getLogger(__name__)

Blocker = Union[BookingConflict, ReservationHold]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityResolver:
    def __init__(self, vehicles: VehicleSource, conflicts: ConflictSource,
                 clock: Optional[Callable[[], datetime]] = None):
        self.vehicles = vehicles
        self.conflicts = conflicts
        self.clock = clock or _utcnow

    def resolve_availability(self, location_id: Optional[str], date_range: DateRange,
                             filters: Optional[AvailabilityFilters] = None) -> List[VehicleOffering]:
        """
        Vehicles free to book at a location for the whole date range.

        Args:
            location_id: Branch id, or None for the location-agnostic fleet.
            date_range: Requested window (already validated end > start).
            filters: Optional conjunction of category/price/seats/transmission/fuel filters.
        """
        try:
            candidates = [v for v in self.vehicles.list_vehicles(location_id) if v.is_available]
        except Exception as e:
            logger.error(f"Vehicle lookup failed for location {location_id}: {e}")
            return []

        if filters is not None:
            candidates = [v for v in candidates if filters.matches(v)]
        if not candidates:
            return []

        vehicle_ids = [v.id for v in candidates]
        bookings = self._load(self.conflicts.get_bookings, vehicle_ids, "bookings")
        holds = self._load(self.conflicts.get_holds, vehicle_ids, "holds")
        if bookings is None or holds is None:
            # Without conflict data nothing can be proven free
            return []

        blocked = self._overlap_blocked(bookings, holds, date_range)
        blocked |= self._buffer_blocked(candidates, bookings, date_range)

        available = [v for v in candidates if v.id not in blocked]
        logger.info(
            f"Availability at {location_id or 'all locations'}: "
            f"{len(available)}/{len(candidates)} vehicles free for {date_range.start.isoformat()} - {date_range.end.isoformat()}"
        )
        return available

    def is_available(self, vehicle_id: str, date_range: DateRange, exclude_hold_id: Optional[str] = None) -> bool:
        """
        Freshness check for one vehicle, run when a hold is taken and again at confirmation.

        Only bookings and holds are evaluated. The cleaning buffer is not
        re-derived here: it was applied when the vehicle was found in search.
        """
        try:
            return not self.find_blocking_conflicts(vehicle_id, date_range, exclude_hold_id=exclude_hold_id)
        except Exception as e:
            logger.error(f"Availability check failed for vehicle {vehicle_id}: {e}")
            return False

    def find_blocking_conflicts(self, vehicle_id: str, date_range: DateRange,
                                exclude_hold_id: Optional[str] = None) -> List[Blocker]:
        """Bookings and live holds that overlap the window. Source errors propagate."""
        now = self.clock()
        blockers: List[Blocker] = [
            b for b in self.conflicts.get_bookings([vehicle_id])
            if b.vehicle_id == vehicle_id and _blocks_by_overlap(b, date_range)
        ]
        blockers.extend(
            h for h in self.conflicts.get_holds([vehicle_id])
            if h.vehicle_id == vehicle_id and h.id != exclude_hold_id and _hold_blocks(h, date_range, now)
        )
        return blockers

    def _load(self, fetch: Callable[[List[str]], list], vehicle_ids: List[str], what: str) -> Optional[list]:
        try:
            return fetch(vehicle_ids)
        except Exception as e:
            logger.error(f"Failed to load {what} for {len(vehicle_ids)} vehicles, treating them as unavailable: {e}")
            return None

    def _overlap_blocked(self, bookings: Iterable[BookingConflict], holds: Iterable[ReservationHold],
                         date_range: DateRange) -> Set[str]:
        now = self.clock()
        blocked = {b.vehicle_id for b in bookings if _blocks_by_overlap(b, date_range)}
        blocked |= {h.vehicle_id for h in holds if _hold_blocks(h, date_range, now)}
        return blocked

    def _buffer_blocked(self, vehicles: Iterable[VehicleOffering], bookings: Iterable[BookingConflict],
                        date_range: DateRange) -> Set[str]:
        by_id: Dict[str, VehicleOffering] = {v.id: v for v in vehicles}
        requested_start = to_aware(date_range.start)
        blocked = set()
        for booking in bookings:
            vehicle = by_id.get(booking.vehicle_id)
            if vehicle is None or booking.status not in BUFFER_BOOKING_STATUSES:
                continue
            booking_end = to_aware(booking.end)
            if booking_end > requested_start:
                continue
            buffer_end = booking_end + timedelta(hours=vehicle.buffer_hours)
            if buffer_end > requested_start:
                blocked.add(booking.vehicle_id)
        return blocked


def _blocks_by_overlap(booking: BookingConflict, date_range: DateRange) -> bool:
    return booking.status in BLOCKING_BOOKING_STATUSES and date_range.overlaps(booking.start, booking.end)


def _hold_blocks(hold: ReservationHold, date_range: DateRange, now: datetime) -> bool:
    return hold.is_live(now) and date_range.overlaps(hold.start, hold.end)


def find_overlapping_bookings(bookings: Iterable[BookingConflict]) -> List[Tuple[BookingConflict, BookingConflict]]:
    """
    Pairs of blocking bookings for the same vehicle whose windows overlap.

    An empty result means the fleet satisfies the no-double-booking invariant.
    """
    per_vehicle: Dict[str, List[BookingConflict]] = {}
    for booking in bookings:
        if booking.status in BLOCKING_BOOKING_STATUSES:
            per_vehicle.setdefault(booking.vehicle_id, []).append(booking)

    pairs = []
    for vehicle_bookings in per_vehicle.values():
        ordered = sorted(vehicle_bookings, key=lambda b: to_aware(b.start))
        for i, first in enumerate(ordered):
            for second in ordered[i + 1:]:
                if ranges_overlap(first.start, first.end, second.start, second.end):
                    pairs.append((first, second))
    return pairs
