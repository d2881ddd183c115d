from .service import BookingService
