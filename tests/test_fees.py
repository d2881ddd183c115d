import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from rental_engine.errors import ValidationError
from rental_engine.models import AddOn, AddOnSelection, ProtectionPlan, VehicleOffering
from rental_engine.pricing import (
    calculate_add_ons_total,
    calculate_cancellation_fee,
    calculate_delivery_fee,
    calculate_late_return_fee,
    compute_dropoff_fee,
)
from rental_engine.pricing.fees import find_closest_location, haversine_distance


class TestDeliveryFee(unittest.TestCase):
    def test_tiers(self):
        self.assertEqual(calculate_delivery_fee(0).fee, Decimal("0"))
        self.assertEqual(calculate_delivery_fee(10).fee, Decimal("0"))
        self.assertEqual(calculate_delivery_fee(10.1).fee, Decimal("49"))
        self.assertEqual(calculate_delivery_fee(50).fee, Decimal("49"))

    def test_out_of_range(self):
        quote = calculate_delivery_fee(51)
        self.assertFalse(quote.is_within_range)
        self.assertIsNone(quote.tier)

    def test_negative_distance(self):
        with self.assertRaises(ValueError):
            calculate_delivery_fee(-1)

    def test_closest_location(self):
        location, distance = find_closest_location(49.10, -122.66)
        self.assertEqual(location.id, "langley")
        self.assertLess(distance, 2)
        self.assertAlmostEqual(haversine_distance(49.0, -122.0, 49.0, -122.0), 0.0)


class TestDropoffFee(unittest.TestCase):
    def test_surrey_to_langley(self):
        self.assertEqual(compute_dropoff_fee("surrey", "langley"), Decimal("50"))
        self.assertEqual(compute_dropoff_fee("langley", "surrey"), Decimal("50"))

    def test_same_location_is_free(self):
        self.assertEqual(compute_dropoff_fee("surrey", "surrey"), Decimal("0"))

    def test_missing_or_unknown_location(self):
        self.assertEqual(compute_dropoff_fee("surrey", None), Decimal("0"))
        self.assertEqual(compute_dropoff_fee("surrey", "vancouver"), Decimal("0"))

    def test_custom_table(self):
        table = {"langley|surrey": Decimal("65")}
        self.assertEqual(compute_dropoff_fee("surrey", "langley", table), Decimal("65"))


class TestLateReturnFee(unittest.TestCase):
    def setUp(self):
        self.scheduled = datetime(2025, 2, 13, 10, 0)

    def test_on_time(self):
        info = calculate_late_return_fee(self.scheduled, self.scheduled - timedelta(minutes=5))
        self.assertFalse(info.is_late)
        self.assertEqual(info.message, "Returned on time")

    def test_grace_period(self):
        info = calculate_late_return_fee(self.scheduled, self.scheduled + timedelta(minutes=15))
        self.assertTrue(info.in_grace_period)
        self.assertEqual(info.fee, Decimal("0"))

    def test_started_hours_are_billed(self):
        info = calculate_late_return_fee(self.scheduled, self.scheduled + timedelta(minutes=16))
        self.assertEqual(info.hours_late, 1)
        self.assertEqual(info.fee, Decimal("25"))

        info = calculate_late_return_fee(self.scheduled, self.scheduled + timedelta(minutes=76))
        self.assertEqual(info.hours_late, 2)
        self.assertEqual(info.fee, Decimal("50"))


class TestCancellationFee(unittest.TestCase):
    def test_free_before_pickup(self):
        fee = calculate_cancellation_fee(2, Decimal("60"))
        self.assertTrue(fee.is_free)
        self.assertEqual(fee.fee, Decimal("0"))

    def test_one_day_after_pickup(self):
        fee = calculate_cancellation_fee(0, Decimal("60"))
        self.assertFalse(fee.is_free)
        self.assertEqual(fee.fee, Decimal("60"))


class TestAddOns(unittest.TestCase):
    def setUp(self):
        self.catalogue = [
            AddOn(id="child_seat", name="Child seat", daily_rate=Decimal("12.99")),
            AddOn(id="ski_rack", name="Ski rack", daily_rate=Decimal("5.00"), one_time_fee=Decimal("10.00")),
            AddOn(id="roadside", name="Roadside assistance", daily_rate=Decimal("7.99"), included_in_premium=True),
            AddOn(id="fuel", name="Prepaid fuel", is_fuel=True),
        ]
        self.vehicle = VehicleOffering(id="v1", category="Compact", daily_rate=Decimal("60"))

    def test_daily_and_one_time(self):
        result = calculate_add_ons_total(
            self.catalogue,
            [AddOnSelection(add_on_id="child_seat", quantity=2), AddOnSelection(add_on_id="ski_rack")],
            rental_days=3,
        )
        # 12.99 * 3 * 2 + (5 * 3 + 10)
        self.assertEqual(result.total, Decimal("102.94"))
        self.assertEqual([item.quantity for item in result.items], [2, 1])

    def test_quantity_is_clamped(self):
        result = calculate_add_ons_total(
            self.catalogue, [AddOnSelection(add_on_id="child_seat", quantity=25)], rental_days=1,
        )
        self.assertEqual(result.items[0].quantity, 10)

    def test_fuel_uses_tank_size(self):
        result = calculate_add_ons_total(
            self.catalogue, [AddOnSelection(add_on_id="fuel", quantity=3)], rental_days=3, vehicle=self.vehicle,
        )
        # 50 L compact tank at 1.80/L
        self.assertEqual(result.total, Decimal("90.00"))
        self.assertEqual(result.items[0].quantity, 1)

    def test_premium_drops_included_add_ons(self):
        selections = [AddOnSelection(add_on_id="roadside"), AddOnSelection(add_on_id="child_seat")]
        premium = calculate_add_ons_total(self.catalogue, selections, 2, protection_plan=ProtectionPlan.PREMIUM)
        basic = calculate_add_ons_total(self.catalogue, selections, 2, protection_plan=ProtectionPlan.BASIC)
        self.assertEqual([item.add_on_id for item in premium.items], ["child_seat"])
        self.assertEqual(len(basic.items), 2)

    def test_unknown_add_on(self):
        with self.assertRaises(ValidationError):
            calculate_add_ons_total(self.catalogue, [AddOnSelection(add_on_id="jetpack")], 1)

    def test_too_many_selections(self):
        selections = [AddOnSelection(add_on_id="child_seat")] * 11
        with self.assertRaises(ValidationError):
            calculate_add_ons_total(self.catalogue, selections, 1)


if __name__ == "__main__":
    unittest.main()
