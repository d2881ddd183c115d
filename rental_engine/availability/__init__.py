from .resolver import AvailabilityResolver, find_overlapping_bookings
from .sources import VehicleSource, ConflictSource, ReservationStore, InMemoryFleetStore
