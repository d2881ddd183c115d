import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rental_engine.availability import AvailabilityResolver, InMemoryFleetStore
from rental_engine.booking import BookingService
from rental_engine.config import Config, setup_logging
from rental_engine.errors import (
    DataUnavailable,
    HoldExpired,
    PriceMismatch,
    RentalError,
    ValidationError,
    VehicleUnavailable,
)
from rental_engine.models import (
    AddOn,
    AvailabilityFilters,
    BookingRequest,
    DateRange,
    VehicleOffering,
)
from rental_engine.pricing import RateConfigService

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 400,
    DataUnavailable: 503,
    VehicleUnavailable: 409,
    PriceMismatch: 409,
    HoldExpired: 410,
}


class AvailabilityBody(BaseModel):
    location_id: Optional[str] = None
    start: datetime
    end: datetime
    filters: Optional[AvailabilityFilters] = None


class HoldBody(BaseModel):
    vehicle_id: str
    start: datetime
    end: datetime


class ConfirmBookingBody(BookingRequest):
    client_total: Decimal
    hold_id: Optional[str] = None
    idempotency_key: Optional[str] = None


def status_code_for(error: RentalError) -> int:
    for error_type, status in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status
    return 500


def build_demo_service() -> BookingService:
    """In-memory fleet used when the server runs without a database."""
    store = InMemoryFleetStore(vehicles=[
        VehicleOffering(id="veh_compact_1", category="Compact", daily_rate=Decimal("60.00"), seats=5,
                        fuel_type="gas", transmission="automatic", location_id="surrey",
                        make="Toyota", model="Corolla", year=2023),
        VehicleOffering(id="veh_suv_1", category="Mid-Size SUV", daily_rate=Decimal("85.00"), seats=5,
                        fuel_type="hybrid", transmission="automatic", location_id="langley",
                        make="Toyota", model="RAV4", year=2024),
        VehicleOffering(id="veh_minivan_1", category="Minivan", daily_rate=Decimal("110.00"), seats=7,
                        fuel_type="gas", transmission="automatic", location_id=None,
                        make="Chrysler", model="Pacifica", year=2023),
        VehicleOffering(id="veh_large_suv_1", category="Large SUV", daily_rate=Decimal("140.00"), seats=8,
                        fuel_type="gas", transmission="automatic", location_id="abbotsford",
                        make="Chevrolet", model="Tahoe", year=2022),
    ])
    add_ons = [
        AddOn(id="child_seat", name="Child seat", daily_rate=Decimal("12.99")),
        AddOn(id="gps", name="GPS navigation", daily_rate=Decimal("9.99")),
        AddOn(id="roadside", name="Roadside assistance", daily_rate=Decimal("7.99"), included_in_premium=True),
        AddOn(id="fuel", name="Prepaid fuel", is_fuel=True),
    ]
    resolver = AvailabilityResolver(store, store)
    return BookingService(resolver, RateConfigService(), store, add_ons=add_ons)


def create_app(service: Optional[BookingService] = None) -> FastAPI:
    if not Config.validate():
        logger.warning("Configuration has invalid values, check the environment.")

    app = FastAPI(title="Rental Engine")
    app.state.service = service or build_demo_service()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RentalError)
    async def rental_error_handler(request: Request, exc: RentalError):
        status = status_code_for(exc)
        logger.info(f"{request.url.path} -> {status} {exc.code}: {exc}")
        body = exc.to_dict()
        if isinstance(exc, PriceMismatch) and exc.breakdown is not None:
            body["breakdown"] = exc.breakdown.to_dict()
        return JSONResponse(status_code=status, content=body)

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/availability")
    def availability(body: AvailabilityBody):
        date_range = DateRange(start=body.start, end=body.end)
        vehicles = app.state.service.resolver.resolve_availability(body.location_id, date_range, body.filters)
        return {
            "vehicles": [vehicle.model_dump(mode="json") for vehicle in vehicles],
            "count": len(vehicles),
        }

    @app.post("/api/quote")
    def quote(body: BookingRequest):
        return app.state.service.quote(body).to_dict()

    @app.post("/api/holds", status_code=201)
    def create_hold(body: HoldBody):
        hold = app.state.service.create_hold(body.vehicle_id, DateRange(start=body.start, end=body.end))
        return hold.model_dump(mode="json")

    @app.delete("/api/holds/{hold_id}")
    def release_hold(hold_id: str):
        app.state.service.release_hold(hold_id)
        return {"hold_id": hold_id, "status": "released"}

    @app.post("/api/bookings", status_code=201)
    def create_booking(body: ConfirmBookingBody):
        record = app.state.service.confirm_booking(
            body,
            body.client_total,
            hold_id=body.hold_id,
            idempotency_key=body.idempotency_key,
        )
        return record.model_dump(mode="json")

    return app


app = create_app()

if __name__ == "__main__":
    setup_logging()
    uvicorn.run("web_server:app", host="0.0.0.0", port=5000, reload=True)
