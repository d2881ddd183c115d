import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..errors import ValidationError
from ..models import ZERO, AddOn, AddOnSelection, ProtectionPlan, VehicleOffering
from .rates import category_key

logger = logging.getLogger(__name__)

MAX_ADD_ON_SELECTIONS = 10
MAX_ADD_ON_QUANTITY = 10

# Prepaid fuel is sold below the pump price
MARKET_FUEL_PRICE_PER_LITER = Decimal("1.85")
FUEL_DISCOUNT_PER_LITER = Decimal("0.05")
FUEL_PRICE_PER_LITER = MARKET_FUEL_PRICE_PER_LITER - FUEL_DISCOUNT_PER_LITER

DEFAULT_TANK_LITERS = Decimal("60")
TANK_SIZES_BY_CATEGORY: Dict[str, Decimal] = {
    "economy": Decimal("45"),
    "compact": Decimal("50"),
    "mid-size-sedan": Decimal("55"),
    "full-size-sedan": Decimal("65"),
    "mid-size-suv": Decimal("75"),
    "standard-suv": Decimal("75"),
    "minivan": Decimal("75"),
    "large-suv": Decimal("90"),
}


class AddOnLine(BaseModel):
    add_on_id: str
    name: str
    quantity: int
    price: Decimal


class AddOnsTotal(BaseModel):
    total: Decimal = ZERO
    items: List[AddOnLine] = Field(default_factory=list)


def tank_capacity(vehicle: Optional[VehicleOffering]) -> Decimal:
    if vehicle is None:
        return DEFAULT_TANK_LITERS
    if vehicle.tank_capacity_liters:
        return vehicle.tank_capacity_liters
    return TANK_SIZES_BY_CATEGORY.get(category_key(vehicle.category), DEFAULT_TANK_LITERS)


def fuel_cost(tank_liters: Decimal) -> Decimal:
    return tank_liters * FUEL_PRICE_PER_LITER


def calculate_add_ons_total(catalogue: Iterable[AddOn], selections: List[AddOnSelection], rental_days: int,
                            vehicle: Optional[VehicleOffering] = None,
                            protection_plan: ProtectionPlan = ProtectionPlan.NONE) -> AddOnsTotal:
    """
    Price the selected add-ons from catalogue prices (never client prices).

    Each add-on costs daily_rate x days x qty + one_time_fee x qty. The fuel
    add-on is a single full tank priced from the vehicle's tank capacity.
    Add-ons already included in premium protection are dropped when premium
    is selected.
    """
    if len(selections) > MAX_ADD_ON_SELECTIONS:
        raise ValidationError(
            f"At most {MAX_ADD_ON_SELECTIONS} add-ons can be selected",
            details={"selected": len(selections)},
        )

    by_id = {add_on.id: add_on for add_on in catalogue}
    total = ZERO
    items: List[AddOnLine] = []

    for selection in selections:
        add_on = by_id.get(selection.add_on_id)
        if add_on is None:
            raise ValidationError(f"Invalid add-on: {selection.add_on_id}", details={"add_on_id": selection.add_on_id})

        if add_on.included_in_premium and protection_plan == ProtectionPlan.PREMIUM:
            logger.info(f"Dropping add-on {add_on.id}: included in premium protection")
            continue

        if add_on.is_fuel:
            quantity = 1
            price = fuel_cost(tank_capacity(vehicle))
        else:
            quantity = min(MAX_ADD_ON_QUANTITY, max(1, selection.quantity))
            price = add_on.daily_rate * rental_days * quantity + add_on.one_time_fee * quantity

        items.append(AddOnLine(add_on_id=add_on.id, name=add_on.name, quantity=quantity, price=price))
        total += price

    return AddOnsTotal(total=total, items=items)
