"""
Pricing engine for the Business Rules Service.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from shared.logging import get_logger
from ..cache.config_store import RuleConfigurationStore
from ..errors import ValidationError
from ..models import (
    CombinationStrategy,
    DiscountType,
    PricingRule,
    PricingRuleType,
    QuantityBasedRuleConfig,
    TimeBasedRuleConfig,
    TimeRange,
    localnow,
    parse_time_of_day,
    to_decimal,
    utcnow,
    validate_line,
)


DEFAULT_DESCRIPTIONS = {
    PricingRuleType.TIME_BASED: "Time-based discount",
    PricingRuleType.QUANTITY_BASED: "Quantity discount",
    PricingRuleType.PROMOTIONAL: "Promotional discount",
}

PERCENTAGE_CEILING = Decimal(100)


@dataclass(frozen=True)
class PricingOrderItem:
    """Order line with its unit price."""
    coffee_id: int
    quantity: int
    base_price: Decimal

    def __post_init__(self):
        validate_line(self.coffee_id, self.quantity)
        price = to_decimal(self.base_price, "base_price")
        if price < 0:
            raise ValidationError("base_price must be non-negative", {"coffee_id": self.coffee_id})
        object.__setattr__(self, "base_price", price)


@dataclass
class AppliedPricingRule:
    """A rule that matched the order and the discount value it carries."""
    rule_id: uuid.UUID
    rule_type: PricingRuleType
    description: str
    discount_amount: Decimal
    discount_type: DiscountType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "rule_type": self.rule_type.value,
            "description": self.description,
            "discount_amount": str(self.discount_amount),
            "discount_type": self.discount_type.value,
        }


@dataclass
class OrderPricingResult:
    """Final price of an order and the rules that produced it."""
    base_price: Decimal
    final_price: Decimal
    total_discount: Decimal
    strategy: CombinationStrategy
    applied_rules: List[AppliedPricingRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_price": str(self.base_price),
            "final_price": str(self.final_price),
            "total_discount": str(self.total_discount),
            "strategy": self.strategy.value,
            "applied_rules": [rule.to_dict() for rule in self.applied_rules],
        }


def is_within_time_ranges(now: time, time_ranges: Sequence[TimeRange]) -> bool:
    """True when `now` falls inside any range, bounds inclusive.

    A range whose start is after its end wraps past midnight.
    """
    for time_range in time_ranges:
        start = parse_time_of_day(time_range.start)
        end = parse_time_of_day(time_range.end)

        if start <= end:
            if start <= now <= end:
                return True
        elif now >= start or now <= end:
            return True

    return False


def discount_for(price: Decimal, rule: AppliedPricingRule) -> Decimal:
    """Discount a rule takes off `price`.

    Values up to 100 are read as a percentage and larger ones as a fixed
    amount, regardless of the rule's declared discount_type.
    """
    if rule.discount_amount <= PERCENTAGE_CEILING:
        return price * rule.discount_amount / PERCENTAGE_CEILING
    return rule.discount_amount


def apply_additive(base_price: Decimal, rules: Sequence[AppliedPricingRule]) -> Decimal:
    total_discount = sum((discount_for(base_price, rule) for rule in rules), Decimal(0))
    return base_price - total_discount


def apply_multiplicative(base_price: Decimal, rules: Sequence[AppliedPricingRule]) -> Decimal:
    current_price = base_price
    for rule in rules:
        current_price -= discount_for(current_price, rule)
    return current_price


def apply_best_price(base_price: Decimal, rules: Sequence[AppliedPricingRule]) -> Decimal:
    return min(apply_additive(base_price, rules), apply_multiplicative(base_price, rules))


STRATEGIES = {
    CombinationStrategy.ADDITIVE: apply_additive,
    CombinationStrategy.MULTIPLICATIVE: apply_multiplicative,
    CombinationStrategy.BEST_PRICE: apply_best_price,
}


class PricingEngine:
    """Applies the active pricing rules to an order."""

    def __init__(
        self,
        config_store: RuleConfigurationStore,
        utcnow: Callable[[], datetime] = utcnow,
        localnow: Callable[[], datetime] = localnow
    ):
        self.config_store = config_store
        self.utcnow = utcnow
        self.localnow = localnow
        self.logger = get_logger("business_rules.pricing")

    async def calculate_order_price(
        self,
        items: Sequence[PricingOrderItem],
        strategy: CombinationStrategy = CombinationStrategy.BEST_PRICE
    ) -> OrderPricingResult:
        """Price an order: base total, matching rules, combined and clamped at zero."""
        try:
            strategy = CombinationStrategy(strategy)
        except ValueError:
            raise ValidationError(f"Unknown combination strategy: {strategy}", {"strategy": str(strategy)})
        base_price = self.calculate_base_price(items)

        applicable_rules = await self.get_applicable_rules(items)

        applied_rules = []
        for rule in applicable_rules:
            applied_rule = self.evaluate_rule(rule, items)
            if applied_rule is not None:
                applied_rules.append(applied_rule)

        final_price = max(STRATEGIES[strategy](base_price, applied_rules), Decimal(0))

        self.logger.debug(
            "Order priced",
            base_price=str(base_price),
            final_price=str(final_price),
            rules_applied=len(applied_rules),
            strategy=strategy.value
        )

        return OrderPricingResult(
            base_price=base_price,
            final_price=final_price,
            total_discount=base_price - final_price,
            strategy=strategy,
            applied_rules=applied_rules
        )

    @staticmethod
    def calculate_base_price(items: Sequence[PricingOrderItem]) -> Decimal:
        return sum((item.base_price * item.quantity for item in items), Decimal(0))

    async def get_applicable_rules(self, items: Sequence[PricingOrderItem]) -> List[PricingRule]:
        """Active, currently valid rules targeting the order, highest priority first.

        Rules with equal priority keep their stored order.
        """
        all_rules = await self.config_store.get_pricing_rules()
        now = self.utcnow()
        order_coffee_ids = {item.coffee_id for item in items}

        applicable_rules = [
            rule for rule in all_rules
            if self._is_rule_applicable(rule, now, order_coffee_ids)
        ]

        # Sort by priority (higher priority first)
        applicable_rules.sort(key=lambda r: r.priority, reverse=True)

        return applicable_rules

    def _is_rule_applicable(self, rule: PricingRule, now: datetime, order_coffee_ids) -> bool:
        if not rule.is_active:
            return False

        if now < rule.valid_from:
            return False

        if rule.valid_until is not None and now > rule.valid_until:
            return False

        if rule.coffee_ids is not None and not order_coffee_ids.intersection(rule.coffee_ids):
            return False

        return True

    def evaluate_rule(
        self,
        rule: PricingRule,
        items: Sequence[PricingOrderItem]
    ) -> Optional[AppliedPricingRule]:
        """Return the applied rule when its condition holds for this order."""
        config = rule.rule_config

        if isinstance(config, TimeBasedRuleConfig):
            if not is_within_time_ranges(self.localnow().time(), config.time_ranges):
                return None

        elif isinstance(config, QuantityBasedRuleConfig):
            total_quantity = sum(item.quantity for item in items)
            if total_quantity < config.min_quantity:
                return None

        return AppliedPricingRule(
            rule_id=rule.rule_id,
            rule_type=rule.rule_type,
            description=config.description or DEFAULT_DESCRIPTIONS[rule.rule_type],
            discount_amount=config.discount_value,
            discount_type=config.discount_type
        )
