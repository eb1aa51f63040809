"""
Rule configuration store for the Business Rules Service.

Holds the four rule categories in process with a per-category TTL. Reads of
a fresh category never suspend; a stale read takes that category's lock,
checks staleness again and only then reloads, so any number of concurrent
stale readers cause a single load.
"""

import asyncio
import json
import time
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from ..errors import (
    BusinessRulesError,
    ConfigurationNotFoundError,
    InvalidConfigurationError,
    InvalidPricingRuleError,
    JsonError,
)
from ..metrics.performance import PerformanceMetrics
from ..models import (
    RULE_CONFIG_MODELS,
    AvailabilityStatus,
    CacheCategory,
    CoffeeAvailability,
    CoffeeBaseTime,
    DiscountType,
    LoyaltyConfig,
    PricingRule,
    PricingRuleType,
    QuantityBasedRuleConfig,
    TimeBasedRuleConfig,
    parse_time_of_day,
)


DEFAULT_TTL_SECONDS = 60.0


@dataclass(frozen=True)
class CacheEntry:
    """A category payload and the clock reading of its last load."""
    payload: Any
    loaded_at: Optional[float]


def parse_category(category: Any) -> CacheCategory:
    """Resolve a category name, rejecting unknown ones."""
    try:
        return CacheCategory(category)
    except ValueError:
        raise InvalidConfigurationError(f"Unknown rule type: {category}", {"category": str(category)})


def _copy_payload(payload: Any) -> Any:
    if isinstance(payload, dict):
        return dict(payload)
    if isinstance(payload, list):
        return list(payload)
    if isinstance(payload, LoyaltyConfig):
        return replace(payload, bonus_multipliers=dict(payload.bonus_multipliers))
    return payload


class RuleConfigurationStore:
    """TTL cache over persisted rule configuration."""

    def __init__(
        self,
        persistence,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        metrics: Optional[PerformanceMetrics] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.persistence = persistence
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics or PerformanceMetrics()
        self.clock = clock
        self.logger = get_logger("business_rules.config_store")

        self._entries: Dict[CacheCategory, CacheEntry] = {}
        self._locks: Dict[CacheCategory, asyncio.Lock] = {
            category: asyncio.Lock() for category in CacheCategory
        }
        self._loaders: Dict[CacheCategory, Callable[[], Awaitable[Any]]] = {
            CacheCategory.AVAILABILITY: self.load_availability_rules,
            CacheCategory.PRICING: self.load_pricing_rules,
            CacheCategory.PREP_TIME: self.load_prep_time_config,
            CacheCategory.LOYALTY: self.load_loyalty_config,
        }

    # Cached accessors

    async def get_availability_rules(self) -> Dict[int, CoffeeAvailability]:
        """Availability records keyed by coffee id."""
        return await self._get(CacheCategory.AVAILABILITY)

    async def get_pricing_rules(self) -> List[PricingRule]:
        """Active pricing rules in priority order."""
        return await self._get(CacheCategory.PRICING)

    async def get_prep_time_config(self) -> Dict[int, CoffeeBaseTime]:
        return await self._get(CacheCategory.PREP_TIME)

    async def get_loyalty_config(self) -> LoyaltyConfig:
        return await self._get(CacheCategory.LOYALTY)

    async def _get(self, category: CacheCategory) -> Any:
        entry = self._entries.get(category)
        if entry is not None and not self._is_stale(entry):
            self.metrics.record_cache_hit(category.value)
            return _copy_payload(entry.payload)

        self.metrics.record_cache_miss(category.value)
        entry = await self.refresh_if_stale(category)
        return _copy_payload(entry.payload)

    def _is_stale(self, entry: CacheEntry) -> bool:
        if entry.loaded_at is None:
            return True
        return self.clock() - entry.loaded_at > self.ttl_seconds

    async def refresh_if_stale(self, category: CacheCategory) -> CacheEntry:
        """Reload a category under its lock unless another task already did."""
        async with self._locks[category]:
            entry = self._entries.get(category)
            if entry is not None and not self._is_stale(entry):
                return entry
            return await self._reload(category)

    async def _reload(self, category: CacheCategory) -> CacheEntry:
        try:
            payload = await self._loaders[category]()
        except BusinessRulesError as e:
            self.metrics.record_reload(category.value, "error")
            self.logger.error(
                "Rule configuration refresh failed",
                category=category.value,
                code=e.code,
                error=e.message
            )
            raise

        entry = CacheEntry(payload=payload, loaded_at=self.clock())
        self._entries[category] = entry
        self.metrics.record_reload(category.value, "ok")
        self.logger.info(
            "Rule configuration refreshed",
            category=category.value,
            size=len(payload) if isinstance(payload, (dict, list)) else 1
        )
        return entry

    # Cache management

    async def invalidate_cache(self, category: Any):
        """Force the next read of a category to reload, keeping the old payload.

        Waits for any reload already in flight, so a load that read the
        table before a write cannot overwrite the invalidation.
        """
        category = parse_category(category)
        async with self._locks[category]:
            entry = self._entries.get(category)
            if entry is not None and entry.loaded_at is not None:
                self._entries[category] = CacheEntry(payload=entry.payload, loaded_at=None)
        self.logger.info("Rule configuration cache invalidated", category=category.value)

    async def invalidate_all(self):
        for category in CacheCategory:
            await self.invalidate_cache(category)

    async def warm_cache(self):
        """Load every category up front."""
        for category in CacheCategory:
            await self.refresh_if_stale(category)
        self.logger.info("Rule configuration cache warmed")

    def cache_status(self) -> Dict[str, Dict[str, Any]]:
        """Per-category load state for diagnostics."""
        now = self.clock()
        status = {}
        for category in CacheCategory:
            entry = self._entries.get(category)
            loaded = entry is not None
            age = None
            if entry is not None and entry.loaded_at is not None:
                age = round(now - entry.loaded_at, 3)
            status[category.value] = {
                "loaded": loaded,
                "age_seconds": age,
                "stale": entry is None or self._is_stale(entry),
                "ttl_seconds": self.ttl_seconds,
            }
        return status

    # Loaders

    async def load_availability_rules(self) -> Dict[int, CoffeeAvailability]:
        rows = await self.persistence.fetch_availability_rows()
        rules = {}
        for row in rows:
            try:
                status = AvailabilityStatus(row["status"])
            except ValueError:
                raise InvalidConfigurationError(
                    f"Invalid availability status for coffee {row['coffee_id']}: {row['status']}"
                )
            rules[row["coffee_id"]] = CoffeeAvailability(
                coffee_id=row["coffee_id"],
                status=status,
                reason=row["reason"],
                available_from=row["available_from"],
                available_until=row["available_until"],
                updated_at=row["updated_at"],
            )
        return rules

    async def load_pricing_rules(self) -> List[PricingRule]:
        rows = await self.persistence.fetch_pricing_rule_rows()
        return [self._build_pricing_rule(row) for row in rows]

    def _build_pricing_rule(self, row: Mapping[str, Any]) -> PricingRule:
        rule_id = row["rule_id"]
        try:
            rule_type = PricingRuleType(row["rule_type"])
        except ValueError:
            raise InvalidPricingRuleError(
                f"Unknown rule type: {row['rule_type']}",
                {"rule_id": str(rule_id)}
            )

        raw_config = row["rule_config"]
        if isinstance(raw_config, (str, bytes)):
            try:
                raw_config = json.loads(raw_config)
            except ValueError as e:
                raise JsonError(str(e), {"rule_id": str(rule_id)})
        if not isinstance(raw_config, dict):
            raise InvalidPricingRuleError(
                f"Invalid {rule_type.value} rule config: expected an object",
                {"rule_id": str(rule_id)}
            )

        try:
            rule_config = RULE_CONFIG_MODELS[rule_type].model_validate(raw_config)
        except PydanticValidationError as e:
            raise InvalidPricingRuleError(
                f"Invalid {rule_type.value} rule config: {e.errors()[0]['msg']}",
                {"rule_id": str(rule_id)}
            )

        self._validate_rule_config(rule_config, rule_id)

        coffee_ids = row["coffee_ids"]
        return PricingRule(
            rule_id=rule_id,
            rule_type=rule_type,
            priority=row["priority"],
            rule_config=rule_config,
            coffee_ids=tuple(coffee_ids) if coffee_ids is not None else None,
            is_active=row["is_active"],
            valid_from=row["valid_from"],
            valid_until=row["valid_until"],
        )

    def _validate_rule_config(self, rule_config, rule_id):
        details = {"rule_id": str(rule_id)}

        if isinstance(rule_config, TimeBasedRuleConfig):
            for time_range in rule_config.time_ranges:
                for value in (time_range.start, time_range.end):
                    try:
                        parse_time_of_day(value)
                    except ValueError as e:
                        raise InvalidPricingRuleError(str(e), details)

        if isinstance(rule_config, QuantityBasedRuleConfig) and rule_config.min_quantity <= 0:
            raise InvalidPricingRuleError("min_quantity must be positive", details)

        value = rule_config.discount_value
        if not value.is_finite() or value < 0:
            raise InvalidPricingRuleError("Discount value must be non-negative", details)
        if rule_config.discount_type == DiscountType.PERCENTAGE and value > 100:
            raise InvalidPricingRuleError("Percentage discount cannot exceed 100%", details)

    async def load_prep_time_config(self) -> Dict[int, CoffeeBaseTime]:
        rows = await self.persistence.fetch_prep_time_rows()
        config = {}
        for row in rows:
            coffee_id = row["coffee_id"]
            if row["base_minutes"] <= 0:
                raise InvalidConfigurationError(
                    f"Invalid base_minutes for coffee {coffee_id}: must be positive"
                )
            if row["per_additional_item"] < 0:
                raise InvalidConfigurationError(
                    f"Invalid per_additional_item for coffee {coffee_id}: must be non-negative"
                )
            config[coffee_id] = CoffeeBaseTime(
                coffee_id=coffee_id,
                base_minutes=row["base_minutes"],
                per_additional_item=row["per_additional_item"],
                updated_at=row["updated_at"],
            )
        return config

    async def load_loyalty_config(self) -> LoyaltyConfig:
        row = await self.persistence.fetch_loyalty_config_row()
        if row is None:
            raise ConfigurationNotFoundError("loyalty_config")

        bonus_multipliers = self._parse_bonus_multipliers(row["bonus_multipliers"])

        points_per_dollar = Decimal(str(row["points_per_dollar"]))
        if not points_per_dollar.is_finite() or points_per_dollar < 0:
            raise InvalidConfigurationError("points_per_dollar must be non-negative")

        for coffee_id, multiplier in bonus_multipliers.items():
            if not multiplier.is_finite() or multiplier < 0:
                raise InvalidConfigurationError(
                    f"Bonus multiplier for coffee {coffee_id} must be non-negative"
                )

        return LoyaltyConfig(
            config_id=row["config_id"],
            points_per_dollar=points_per_dollar,
            bonus_multipliers=bonus_multipliers,
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _parse_bonus_multipliers(raw: Any) -> Dict[int, Decimal]:
        try:
            if isinstance(raw, (str, bytes)):
                raw = json.loads(raw)
            if raw is None:
                return {}
            if not isinstance(raw, dict):
                raise ValueError("expected an object of coffee_id to multiplier")
            return {int(key): Decimal(str(value)) for key, value in raw.items()}
        except (ValueError, TypeError, InvalidOperation) as e:
            raise InvalidConfigurationError(f"Invalid bonus_multipliers JSON: {e}")
