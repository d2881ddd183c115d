"""
Booking pricing engine.

calculate_booking_pricing() is the single source of truth for a rental's
price. The checkout estimate and the server-side re-validation both call it
with the same inputs, so its output must be deterministic: amounts stay exact
Decimals through every step and are only quantized to cents when the breakdown
is serialised (PriceBreakdown.to_dict / to_record).

Computation order:
    1. base rental            rate x days
    2. weekend surcharge      rate x 15% per Fri/Sat/Sun rental day
    3. duration discount      on (1 + 2): >=21 days 20%, >=7 days 10%
    4. protection             plan rate x days
    5. add-ons                precomputed total
    6. driver fees            young primary driver, additional drivers
    7. delivery / drop-off    passed through
    8. subtotal               sum of 1-7
    9. regulatory fees        (PVRT + ACSRCH) x days
    10. taxes                 PST + GST on subtotal (+ fees if configured)
    11. total                 subtotal + fees + taxes
    12. deposit               held separately, never part of the total
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from ..errors import ValidationError
from ..models import (
    MAX_RENTAL_DAYS,
    MIN_RENTAL_DAYS,
    ZERO,
    DiscountType,
    DriverAgeBand,
    LineItem,
    PriceBreakdown,
    PricingInput,
    format_money,
)
from ..utils.dates import count_weekend_days, is_weekend_day
from .policy import DEFAULT_POLICY, PricingPolicy, WeekendPolicy

logger = logging.getLogger(__name__)


def duration_discount(rental_days: int, policy: PricingPolicy = DEFAULT_POLICY) -> Tuple[DiscountType, Decimal]:
    """Longest qualifying tier wins."""
    if rental_days >= policy.monthly_discount_threshold:
        return DiscountType.MONTHLY, policy.monthly_discount_rate
    if rental_days >= policy.weekly_discount_threshold:
        return DiscountType.WEEKLY, policy.weekly_discount_rate
    return DiscountType.NONE, ZERO


def surcharged_days(pricing_input: PricingInput, policy: PricingPolicy) -> int:
    pickup = pricing_input.pickup_date
    if pickup is None:
        return 0
    if policy.weekend_policy == WeekendPolicy.PICKUP_DAY:
        return pricing_input.rental_days if is_weekend_day(pickup) else 0
    return count_weekend_days(pickup, pricing_input.rental_days)


def _validate(pricing_input: PricingInput):
    days = pricing_input.rental_days
    if days < MIN_RENTAL_DAYS or days > MAX_RENTAL_DAYS:
        raise ValidationError(
            f"Rental days must be between {MIN_RENTAL_DAYS} and {MAX_RENTAL_DAYS}",
            details={"rental_days": days},
        )
    amounts = {
        "vehicle_daily_rate": pricing_input.vehicle_daily_rate,
        "protection_daily_rate": pricing_input.protection_daily_rate,
        "add_ons_total": pricing_input.add_ons_total,
        "delivery_fee": pricing_input.delivery_fee,
        "dropoff_fee": pricing_input.dropoff_fee,
    }
    negative = [name for name, value in amounts.items() if value < 0]
    if negative:
        raise ValidationError(
            f"Negative amounts are not allowed: {', '.join(negative)}",
            details={name: amounts[name] for name in negative},
        )


def calculate_booking_pricing(pricing_input: PricingInput,
                              policy: Optional[PricingPolicy] = None) -> Optional[PriceBreakdown]:
    """
    Compute the itemized price of a rental.

    Args:
        pricing_input: Vehicle rate, rental days and cart selections.
        policy: Rate table to price against. Defaults to DEFAULT_POLICY.

    Returns:
        A fresh PriceBreakdown, or None when the vehicle or protection rate is
        not known yet. Callers must treat None as "cannot price yet".

    Raises:
        ValidationError: rental days outside [1, 30] or a negative amount.
    """
    policy = policy or DEFAULT_POLICY

    if pricing_input.vehicle_daily_rate is None or pricing_input.protection_daily_rate is None:
        logger.info("Pricing skipped: vehicle or protection rate missing")
        return None

    _validate(pricing_input)

    days = pricing_input.rental_days
    rate = pricing_input.vehicle_daily_rate
    items: List[LineItem] = []

    # 1. Base rental
    base = rate * days
    items.append(LineItem(
        code="vehicle_rental",
        label=f"Vehicle rental ({days} day{'s' if days != 1 else ''} x ${format_money(rate)}/day)",
        amount=base,
    ))

    # 2. Weekend surcharge
    weekend_days = surcharged_days(pricing_input, policy)
    surcharge = rate * policy.weekend_surcharge_rate * weekend_days
    if surcharge:
        items.append(LineItem(
            code="weekend_surcharge",
            label=f"Weekend surcharge ({weekend_days} day{'s' if weekend_days != 1 else ''})",
            amount=surcharge,
        ))

    # 3. Duration discount, on base + surcharge only
    discount_type, discount_rate = duration_discount(days, policy)
    discount = (base + surcharge) * discount_rate
    if discount:
        items.append(LineItem(
            code="duration_discount",
            label=f"{discount_type.value.capitalize()} discount ({discount_rate * 100:.0f}%)",
            amount=-discount,
        ))
    vehicle_total = base + surcharge - discount

    # 4. Protection
    protection = pricing_input.protection_daily_rate * days
    if protection:
        items.append(LineItem(
            code="protection",
            label=pricing_input.protection_name or "Protection",
            amount=protection,
        ))

    # 5. Add-ons
    add_ons = pricing_input.add_ons_total
    if add_ons:
        items.append(LineItem(code="add_ons", label="Add-ons", amount=add_ons))

    # 6. Driver fees
    young_fee = ZERO
    if pricing_input.driver_age_band == DriverAgeBand.YOUNG:
        young_fee = policy.young_driver_daily_fee * days
        items.append(LineItem(code="young_driver_fee", label="Young driver fee (20-24)", amount=young_fee))

    extra_count = len(pricing_input.additional_drivers)
    young_extra_count = sum(1 for band in pricing_input.additional_drivers if band == DriverAgeBand.YOUNG)
    additional = policy.additional_driver_daily_rate * extra_count * days
    young_additional = policy.young_additional_driver_daily_rate * young_extra_count * days
    if additional:
        items.append(LineItem(
            code="additional_drivers",
            label=f"Additional drivers ({extra_count})",
            amount=additional,
        ))
    if young_additional:
        items.append(LineItem(
            code="young_additional_drivers",
            label=f"Young additional drivers ({young_extra_count})",
            amount=young_additional,
        ))

    # 7. Delivery and different drop-off location
    delivery = pricing_input.delivery_fee
    if delivery:
        items.append(LineItem(code="delivery_fee", label="Delivery fee", amount=delivery))
    dropoff = pricing_input.dropoff_fee
    if dropoff:
        items.append(LineItem(code="dropoff_fee", label="Different drop-off location fee", amount=dropoff))

    # 8. Subtotal
    subtotal = vehicle_total + protection + add_ons + young_fee + additional + young_additional + delivery + dropoff

    # 9. Daily regulatory fees
    regulatory = policy.daily_regulatory_fee * days
    items.append(LineItem(
        code="regulatory_fees",
        label=f"Daily regulatory fees (PVRT ${format_money(policy.pvrt_daily_fee)} + "
              f"ACSRCH ${format_money(policy.acsrch_daily_fee)}/day)",
        amount=regulatory,
    ))

    # 10. Taxes
    tax_base = subtotal + regulatory if policy.tax_regulatory_fees else subtotal
    pst = tax_base * policy.pst_rate
    gst = tax_base * policy.gst_rate
    items.append(LineItem(code="pst", label=f"PST ({policy.pst_rate * 100:.0f}%)", amount=pst))
    items.append(LineItem(code="gst", label=f"GST ({policy.gst_rate * 100:.0f}%)", amount=gst))
    tax = pst + gst

    # 11. Total
    total = subtotal + regulatory + tax

    # 12. Deposit hold, shown but not charged
    items.append(LineItem(
        code="deposit",
        label="Security deposit (hold)",
        amount=policy.deposit_amount,
        included_in_total=False,
    ))

    return PriceBreakdown(
        line_items=items,
        rental_days=days,
        daily_rate=rate,
        discount_type=discount_type,
        subtotal=subtotal,
        regulatory_fees=regulatory,
        pst=pst,
        gst=gst,
        tax_amount=tax,
        total=total,
        deposit_amount=policy.deposit_amount,
    )
