"""
Data sources the availability resolver reads from.

The resolver never talks to a database directly. It is handed a VehicleSource
and a ConflictSource; production wires these to the hosted database, tests and
the demo server use InMemoryFleetStore. Sources signal fetch failures by
raising DataUnavailable so the resolver can fail closed.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from ..models import BookingConflict, BookingRecord, HoldStatus, ReservationHold, VehicleOffering


class VehicleSource(ABC):
    @abstractmethod
    def list_vehicles(self, location_id: Optional[str]) -> List[VehicleOffering]:
        """
        Vehicles rentable at a location.

        Returns vehicles whose location matches exactly plus location-agnostic
        vehicles (location_id None); a None location_id therefore selects only
        the location-agnostic fleet. Vehicles flagged unavailable are included;
        the resolver applies the availability flag.
        """
        pass

    @abstractmethod
    def get_vehicle(self, vehicle_id: str) -> Optional[VehicleOffering]:
        pass


class ConflictSource(ABC):
    @abstractmethod
    def get_bookings(self, vehicle_ids: Iterable[str]) -> List[BookingConflict]:
        """All booking windows recorded for the given vehicles, any status."""
        pass

    @abstractmethod
    def get_holds(self, vehicle_ids: Iterable[str]) -> List[ReservationHold]:
        """All reservation holds recorded for the given vehicles, any status."""
        pass


class ReservationStore(ABC):
    """Writes made by the booking service: holds and confirmed bookings."""

    @abstractmethod
    def add_hold(self, hold: ReservationHold):
        pass

    @abstractmethod
    def get_hold(self, hold_id: str) -> Optional[ReservationHold]:
        pass

    @abstractmethod
    def set_hold_status(self, hold_id: str, status: HoldStatus):
        pass

    @abstractmethod
    def save_booking(self, record: BookingRecord):
        pass


class InMemoryFleetStore(VehicleSource, ConflictSource, ReservationStore):
    """Vehicles, bookings and holds kept in process memory."""

    def __init__(self, vehicles: Optional[Iterable[VehicleOffering]] = None,
                 bookings: Optional[Iterable[BookingConflict]] = None,
                 holds: Optional[Iterable[ReservationHold]] = None):
        self._lock = threading.Lock()
        self._vehicles: Dict[str, VehicleOffering] = {v.id: v for v in vehicles or []}
        self._bookings: List[BookingConflict] = list(bookings or [])
        self._holds: Dict[str, ReservationHold] = {h.id: h for h in holds or []}

    # VehicleSource

    def list_vehicles(self, location_id: Optional[str]) -> List[VehicleOffering]:
        with self._lock:
            return [v for v in self._vehicles.values() if v.location_id is None or v.location_id == location_id]

    def get_vehicle(self, vehicle_id: str) -> Optional[VehicleOffering]:
        with self._lock:
            return self._vehicles.get(vehicle_id)

    def add_vehicle(self, vehicle: VehicleOffering):
        with self._lock:
            self._vehicles[vehicle.id] = vehicle

    # ConflictSource

    def get_bookings(self, vehicle_ids: Iterable[str]) -> List[BookingConflict]:
        wanted = set(vehicle_ids)
        with self._lock:
            return [b for b in self._bookings if b.vehicle_id in wanted]

    def get_holds(self, vehicle_ids: Iterable[str]) -> List[ReservationHold]:
        wanted = set(vehicle_ids)
        with self._lock:
            return [h for h in self._holds.values() if h.vehicle_id in wanted]

    # Writes used by the booking service

    def add_booking(self, booking: BookingConflict):
        with self._lock:
            self._bookings.append(booking)

    def save_booking(self, record: BookingRecord):
        self.add_booking(record.as_conflict())

    def add_hold(self, hold: ReservationHold):
        with self._lock:
            self._holds[hold.id] = hold

    def get_hold(self, hold_id: str) -> Optional[ReservationHold]:
        with self._lock:
            return self._holds.get(hold_id)

    def set_hold_status(self, hold_id: str, status: HoldStatus):
        with self._lock:
            hold = self._holds.get(hold_id)
            if hold is not None:
                self._holds[hold_id] = hold.model_copy(update={"status": status})
