from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum


class WeekendPolicy(str, Enum):
    PER_DAY = "per_day"          # surcharge each Fri/Sat/Sun inside the rental
    PICKUP_DAY = "pickup_day"    # surcharge every day when the pickup day is Fri/Sat/Sun


@dataclass(frozen=True)
class PricingPolicy:
    """Rate table the pricing engine runs against. Injected per call."""

    weekend_surcharge_rate: Decimal = Decimal("0.15")
    weekend_policy: WeekendPolicy = WeekendPolicy.PER_DAY

    weekly_discount_threshold: int = 7
    weekly_discount_rate: Decimal = Decimal("0.10")
    monthly_discount_threshold: int = 21
    monthly_discount_rate: Decimal = Decimal("0.20")

    young_driver_daily_fee: Decimal = Decimal("15.00")
    additional_driver_daily_rate: Decimal = Decimal("15.99")
    # Surcharge added on top of the standard rate, not a replacement rate
    young_additional_driver_daily_rate: Decimal = Decimal("15.00")

    # BC Passenger Vehicle Rental Tax and airport/concession surcharge, per day
    pvrt_daily_fee: Decimal = Decimal("1.50")
    acsrch_daily_fee: Decimal = Decimal("1.00")

    pst_rate: Decimal = Decimal("0.07")
    gst_rate: Decimal = Decimal("0.05")
    tax_regulatory_fees: bool = False

    deposit_amount: Decimal = Decimal("350.00")

    @property
    def total_tax_rate(self) -> Decimal:
        return self.pst_rate + self.gst_rate

    @property
    def daily_regulatory_fee(self) -> Decimal:
        return self.pvrt_daily_fee + self.acsrch_daily_fee

    def with_changes(self, **changes) -> "PricingPolicy":
        return replace(self, **changes)


DEFAULT_POLICY = PricingPolicy()
