from .policy import PricingPolicy, WeekendPolicy, DEFAULT_POLICY
from .engine import calculate_booking_pricing, duration_discount
from .rates import (
    RateConfigService,
    SettingsStore,
    InMemorySettingsStore,
    GroupRates,
    DriverFeeSettings,
    protection_group_for,
    protection_group_from_name,
)
from .fees import (
    calculate_delivery_fee,
    compute_dropoff_fee,
    calculate_late_return_fee,
    calculate_cancellation_fee,
)
from .addons import calculate_add_ons_total
