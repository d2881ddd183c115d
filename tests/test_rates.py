import unittest
from decimal import Decimal
from unittest.mock import MagicMock

from rental_engine.cache import TTLCache
from rental_engine.models import ProtectionGroup, ProtectionPlan
from rental_engine.pricing import (
    DEFAULT_POLICY,
    InMemorySettingsStore,
    RateConfigService,
    protection_group_for,
    protection_group_from_name,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestProtectionGroups(unittest.TestCase):
    def test_category_table(self):
        self.assertEqual(protection_group_for("Compact"), ProtectionGroup.GROUP_1)
        self.assertEqual(protection_group_for("Mid-Size SUV"), ProtectionGroup.GROUP_1)
        self.assertEqual(protection_group_for("minivan"), ProtectionGroup.GROUP_2)
        self.assertEqual(protection_group_for("Standard SUV"), ProtectionGroup.GROUP_2)
        self.assertEqual(protection_group_for("Large SUV"), ProtectionGroup.GROUP_3)

    def test_unknown_category_defaults_to_group_1(self):
        with self.assertLogs("rental_engine.pricing.rates", level="WARNING"):
            self.assertEqual(protection_group_for("Convertible"), ProtectionGroup.GROUP_1)

    def test_legacy_keyword_classification(self):
        self.assertEqual(protection_group_from_name("LARGE SUV 4x4"), ProtectionGroup.GROUP_3)
        self.assertEqual(protection_group_from_name("Minivan Plus"), ProtectionGroup.GROUP_2)
        self.assertEqual(protection_group_from_name("Economy"), ProtectionGroup.GROUP_1)


class TestRateConfigService(unittest.TestCase):
    def setUp(self):
        self.store = InMemorySettingsStore()
        self.clock = FakeClock()
        self.service = RateConfigService(
            store=self.store,
            base_policy=DEFAULT_POLICY,
            cache=TTLCache(ttl_seconds=30, clock=self.clock),
        )

    def test_defaults_without_settings(self):
        rates = self.service.get_rates(ProtectionGroup.GROUP_1)
        self.assertEqual(rates.basic, Decimal("32.99"))
        self.assertEqual(rates.smart, Decimal("37.99"))
        self.assertEqual(rates.premium, Decimal("49.99"))

    def test_group_1_reads_settings(self):
        self.store.set("protection_smart_rate", "39.99")
        self.assertEqual(self.service.get_rates(ProtectionGroup.GROUP_1).smart, Decimal("39.99"))

    def test_groups_2_and_3_are_fixed(self):
        self.store.set("protection_basic_rate", "1.00")
        self.assertEqual(self.service.get_rates(ProtectionGroup.GROUP_2).basic, Decimal("52.99"))
        self.assertEqual(self.service.get_rates(ProtectionGroup.GROUP_3).premium, Decimal("82.99"))

    def test_invalid_values_fall_back(self):
        self.store.set("protection_basic_rate", "abc")
        self.store.set("protection_premium_rate", "-5")
        rates = self.service.get_rates(ProtectionGroup.GROUP_1)
        self.assertEqual(rates.basic, Decimal("32.99"))
        self.assertEqual(rates.premium, Decimal("49.99"))

    def test_store_failure_uses_defaults(self):
        store = MagicMock()
        store.get_settings.side_effect = ConnectionError("settings table unreachable")
        service = RateConfigService(store=store, base_policy=DEFAULT_POLICY)

        self.assertEqual(service.get_rates(ProtectionGroup.GROUP_1).basic, Decimal("32.99"))
        self.assertEqual(service.get_young_driver_fee(), Decimal("15.00"))

    def test_failures_are_not_cached(self):
        store = MagicMock()
        store.get_settings.side_effect = [ConnectionError("down"), {"protection_basic_rate": "35.00"}]
        service = RateConfigService(store=store, base_policy=DEFAULT_POLICY)

        self.assertEqual(service.get_rates(ProtectionGroup.GROUP_1).basic, Decimal("32.99"))
        self.assertEqual(service.get_rates(ProtectionGroup.GROUP_1).basic, Decimal("35.00"))

    def test_values_are_cached_until_ttl(self):
        self.store.set("protection_basic_rate", "35.00")
        self.assertEqual(self.service.get_rates(ProtectionGroup.GROUP_1).basic, Decimal("35.00"))

        self.store.set("protection_basic_rate", "36.00")
        self.clock.now = 29
        self.assertEqual(self.service.get_rates(ProtectionGroup.GROUP_1).basic, Decimal("35.00"))

        self.clock.now = 31
        self.assertEqual(self.service.get_rates(ProtectionGroup.GROUP_1).basic, Decimal("36.00"))

    def test_invalidate(self):
        self.store.set("protection_basic_rate", "35.00")
        self.service.get_rates(ProtectionGroup.GROUP_1)
        self.store.set("protection_basic_rate", "36.00")
        self.service.invalidate()
        self.assertEqual(self.service.get_rates(ProtectionGroup.GROUP_1).basic, Decimal("36.00"))

    def test_driver_fee_settings(self):
        defaults = self.service.get_driver_fee_settings()
        self.assertEqual(defaults.standard, Decimal("15.99"))
        self.assertEqual(defaults.young, Decimal("15.00"))

        # legacy key is honoured when the new one is absent
        self.store.set("additional_driver_daily_rate", "12.00")
        self.service.invalidate()
        self.assertEqual(self.service.get_driver_fee_settings().standard, Decimal("12.00"))

        self.store.set("additional_driver_daily_rate_standard", "14.00")
        self.service.invalidate()
        self.assertEqual(self.service.get_driver_fee_settings().standard, Decimal("14.00"))

    def test_protection_rate_for_category(self):
        package = self.service.get_protection_rate(ProtectionPlan.PREMIUM, "Large SUV")
        self.assertEqual(package.daily_rate, Decimal("82.99"))
        self.assertEqual(package.name, "All Inclusive Protection")

        none = self.service.get_protection_rate(ProtectionPlan.NONE, "Compact")
        self.assertEqual(none.daily_rate, Decimal("0"))

    def test_pricing_policy_applies_settings(self):
        self.store.set("young_driver_daily_fee", "20.00")
        self.store.set("additional_driver_daily_rate_young", "18.00")
        policy = self.service.pricing_policy()
        self.assertEqual(policy.young_driver_daily_fee, Decimal("20.00"))
        self.assertEqual(policy.young_additional_driver_daily_rate, Decimal("18.00"))
        self.assertEqual(policy.additional_driver_daily_rate, Decimal("15.99"))


class TestTTLCache(unittest.TestCase):
    def test_loader_called_once_within_ttl(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        loader = MagicMock(return_value="value")

        cache.get_or_load("key", loader)
        cache.get_or_load("key", loader)
        self.assertEqual(loader.call_count, 1)

        clock.now = 10
        cache.get_or_load("key", loader)
        self.assertEqual(loader.call_count, 2)
        self.assertEqual(len(cache), 1)

    def test_get_and_put_expire(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.put("old", 1)
        self.assertEqual(cache.get("old"), 1)

        clock.now = 10
        self.assertIsNone(cache.get("old"))
        cache.put("stale", 2)
        clock.now = 25
        cache.put("fresh", 3)
        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.get("fresh"), 3)


if __name__ == "__main__":
    unittest.main()
