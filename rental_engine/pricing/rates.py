"""
Protection-plan and driver-fee rate lookup.

Protection pricing depends on the vehicle's protection group. Group 1 rates are
admin-editable settings; groups 2 and 3 are fixed. Driver fee settings are also
admin-editable. Every lookup falls back to the built-in defaults when the
settings store is unreachable or a key is missing, so pricing can always run.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from ..cache import TTLCache
from ..config import Config
from ..models import ProtectionGroup, ProtectionPackage, ProtectionPlan
from .policy import DEFAULT_POLICY, PricingPolicy, WeekendPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupRates:
    basic: Decimal
    smart: Decimal
    premium: Decimal

    def for_plan(self, plan: ProtectionPlan) -> Decimal:
        if plan == ProtectionPlan.NONE:
            return Decimal("0")
        return getattr(self, plan.value)


@dataclass(frozen=True)
class DriverFeeSettings:
    standard: Decimal
    young: Decimal


GROUP_RATES: Dict[ProtectionGroup, GroupRates] = {
    ProtectionGroup.GROUP_1: GroupRates(Decimal("32.99"), Decimal("37.99"), Decimal("49.99")),
    ProtectionGroup.GROUP_2: GroupRates(Decimal("52.99"), Decimal("57.99"), Decimal("69.99")),
    ProtectionGroup.GROUP_3: GroupRates(Decimal("64.99"), Decimal("69.99"), Decimal("82.99")),
}

PLAN_NAMES = {
    ProtectionPlan.NONE: "No extra protection",
    ProtectionPlan.BASIC: "Basic Protection",
    ProtectionPlan.SMART: "Smart Protection",
    ProtectionPlan.PREMIUM: "All Inclusive Protection",
}

PLAN_DEDUCTIBLES = {
    ProtectionPlan.NONE: "Up to full vehicle value",
    ProtectionPlan.BASIC: "Up to $800.00",
    ProtectionPlan.SMART: "No deductible",
    ProtectionPlan.PREMIUM: "No deductible",
}

# Category identifier -> protection group
CATEGORY_PROTECTION_GROUPS: Dict[str, ProtectionGroup] = {
    "mystery-car": ProtectionGroup.GROUP_1,
    "compact": ProtectionGroup.GROUP_1,
    "mid-size-sedan": ProtectionGroup.GROUP_1,
    "full-size-sedan": ProtectionGroup.GROUP_1,
    "mid-size-suv": ProtectionGroup.GROUP_1,
    "minivan": ProtectionGroup.GROUP_2,
    "standard-suv": ProtectionGroup.GROUP_2,
    "large-suv": ProtectionGroup.GROUP_3,
}

GROUP_1_RATE_KEYS = {
    ProtectionPlan.BASIC: "protection_basic_rate",
    ProtectionPlan.SMART: "protection_smart_rate",
    ProtectionPlan.PREMIUM: "protection_premium_rate",
}

DRIVER_FEE_KEYS = [
    "additional_driver_daily_rate_standard",
    "additional_driver_daily_rate",
    "additional_driver_daily_rate_young",
    "young_additional_driver_daily_rate",
    "young_driver_daily_fee",
]


def category_key(category_name: Optional[str]) -> str:
    """Normalise a category display name ("Mid-Size SUV") to its identifier ("mid-size-suv")."""
    return re.sub(r"[^a-z0-9]+", "-", (category_name or "").lower()).strip("-")


def protection_group_for(category: Optional[str]) -> ProtectionGroup:
    key = category_key(category)
    group = CATEGORY_PROTECTION_GROUPS.get(key)
    if group is None:
        if key:
            logger.warning(f"Unknown vehicle category {category!r}, pricing protection as group 1")
        return ProtectionGroup.GROUP_1
    return group


def protection_group_from_name(category_name: Optional[str]) -> ProtectionGroup:
    """
    Keyword classification of free-text category names.

    Only for migrating legacy category rows onto CATEGORY_PROTECTION_GROUPS;
    runtime pricing goes through protection_group_for().
    """
    name = (category_name or "").upper()
    if "LARGE" in name and "SUV" in name:
        return ProtectionGroup.GROUP_3
    if "MINIVAN" in name:
        return ProtectionGroup.GROUP_2
    if "STANDARD" in name and "SUV" in name:
        return ProtectionGroup.GROUP_2
    return ProtectionGroup.GROUP_1


class SettingsStore(ABC):
    """Key/value source of admin-editable settings."""

    @abstractmethod
    def get_settings(self, keys: List[str]) -> Dict[str, str]:
        """Return the values present for the requested keys."""
        pass


class InMemorySettingsStore(SettingsStore):
    def __init__(self, settings: Optional[Dict[str, str]] = None):
        self._settings: Dict[str, str] = dict(settings or {})

    def get_settings(self, keys: List[str]) -> Dict[str, str]:
        return {k: self._settings[k] for k in keys if k in self._settings}

    def set(self, key: str, value: str):
        self._settings[key] = value


class RateConfigService:
    """Read-through cache over the settings store with hardcoded defaults."""

    def __init__(self, store: Optional[SettingsStore] = None, ttl_seconds: Optional[float] = None,
                 base_policy: Optional[PricingPolicy] = None, cache: Optional[TTLCache] = None):
        self._store = store
        self._cache = cache or TTLCache(
            ttl_seconds=Config.RATE_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._base_policy = base_policy or DEFAULT_POLICY.with_changes(
            tax_regulatory_fees=Config.TAX_REGULATORY_FEES,
            weekend_policy=WeekendPolicy(Config.WEEKEND_POLICY),
        )

    def invalidate(self):
        self._cache.invalidate()

    def _load(self, keys: List[str]) -> Dict[str, str]:
        if self._store is None:
            return {}
        cache_key = "settings:" + ",".join(keys)
        try:
            return self._cache.get_or_load(cache_key, lambda: dict(self._store.get_settings(keys)))
        except Exception as e:
            logger.warning(f"Settings lookup failed, using default rates: {e}")
            return {}

    @staticmethod
    def _decimal(settings: Dict[str, str], keys: Iterable[str], default: Decimal) -> Decimal:
        for key in keys:
            raw = settings.get(key)
            if raw is None or str(raw).strip() == "":
                continue
            try:
                value = Decimal(str(raw).strip())
            except InvalidOperation:
                logger.warning(f"Ignoring non-numeric setting {key}={raw!r}")
                continue
            if value < 0 or not value.is_finite():
                logger.warning(f"Ignoring out-of-range setting {key}={raw!r}")
                continue
            return value
        return default

    def get_rates(self, group: ProtectionGroup) -> GroupRates:
        group = ProtectionGroup(group)
        defaults = GROUP_RATES[group]
        if group != ProtectionGroup.GROUP_1:
            return defaults

        settings = self._load(list(GROUP_1_RATE_KEYS.values()))
        return GroupRates(
            basic=self._decimal(settings, [GROUP_1_RATE_KEYS[ProtectionPlan.BASIC]], defaults.basic),
            smart=self._decimal(settings, [GROUP_1_RATE_KEYS[ProtectionPlan.SMART]], defaults.smart),
            premium=self._decimal(settings, [GROUP_1_RATE_KEYS[ProtectionPlan.PREMIUM]], defaults.premium),
        )

    def get_driver_fee_settings(self) -> DriverFeeSettings:
        settings = self._load(DRIVER_FEE_KEYS)
        return DriverFeeSettings(
            standard=self._decimal(
                settings,
                ["additional_driver_daily_rate_standard", "additional_driver_daily_rate"],
                self._base_policy.additional_driver_daily_rate,
            ),
            young=self._decimal(
                settings,
                ["additional_driver_daily_rate_young", "young_additional_driver_daily_rate"],
                self._base_policy.young_additional_driver_daily_rate,
            ),
        )

    def get_young_driver_fee(self) -> Decimal:
        settings = self._load(DRIVER_FEE_KEYS)
        return self._decimal(settings, ["young_driver_daily_fee"], self._base_policy.young_driver_daily_fee)

    def get_protection_packages(self, group: ProtectionGroup) -> List[ProtectionPackage]:
        rates = self.get_rates(group)
        return [
            ProtectionPackage(
                plan=plan,
                name=PLAN_NAMES[plan],
                daily_rate=rates.for_plan(plan),
                deductible=PLAN_DEDUCTIBLES[plan],
            )
            for plan in ProtectionPlan
        ]

    def get_protection_rate(self, plan: ProtectionPlan, category: Optional[str]) -> ProtectionPackage:
        plan = ProtectionPlan(plan)
        group = protection_group_for(category)
        for package in self.get_protection_packages(group):
            if package.plan == plan:
                return package
        # ProtectionPlan is a closed enum; every plan has a package
        raise KeyError(plan)

    def pricing_policy(self) -> PricingPolicy:
        """Base policy with the admin-configured driver fees applied."""
        fees = self.get_driver_fee_settings()
        return self._base_policy.with_changes(
            additional_driver_daily_rate=fees.standard,
            young_additional_driver_daily_rate=fees.young,
            young_driver_daily_fee=self.get_young_driver_fee(),
        )
