"""
Business rules engine: the entry point used by the order workflow.

Composes the configuration store, the four rule evaluators, the audit trail
and the performance counters. Order creation calls validate_order,
calculate_price and estimate_prep_time in that order; award_loyalty_points
runs once the order is completed.
"""

import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from shared.logging import get_logger, order_context
from shared.metrics import MetricsCollector
from .audit.logger import AuditLogger
from .availability.engine import AvailabilityEngine, OrderItem, OrderValidationResult
from .cache.config_store import DEFAULT_TTL_SECONDS, RuleConfigurationStore
from .loyalty.engine import LoyaltyEngine, LoyaltyOrderItem
from .metrics.performance import (
    AVAILABILITY,
    DEFAULT_SLOW_THRESHOLD_MS,
    LOYALTY,
    PREP_TIME,
    PRICING,
    PerformanceMetrics,
)
from .models import AuditRecord, AvailabilityStatus, CoffeeAvailability, CombinationStrategy, localnow, utcnow
from .pricing.engine import OrderPricingResult, PricingEngine, PricingOrderItem
from .prep_time.calculator import PrepTimeCalculator, PrepTimeEstimate, PrepTimeOrderItem


class BusinessRulesEngine:
    """Runs availability, pricing, prep time and loyalty rules for orders."""

    def __init__(
        self,
        persistence,
        *,
        cache_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS,
        collector: Optional[MetricsCollector] = None,
        default_strategy: CombinationStrategy = CombinationStrategy.BEST_PRICE,
        clock: Callable[[], float] = time.monotonic,
        utcnow: Callable[[], datetime] = utcnow,
        localnow: Callable[[], datetime] = localnow
    ):
        self.logger = get_logger("business_rules.engine")
        self.default_strategy = CombinationStrategy(default_strategy)
        self.metrics = PerformanceMetrics(collector, slow_threshold_ms=slow_threshold_ms)
        self.config_store = RuleConfigurationStore(
            persistence,
            ttl_seconds=cache_ttl_seconds,
            metrics=self.metrics,
            clock=clock
        )
        self.availability_engine = AvailabilityEngine(self.config_store, utcnow=utcnow)
        self.pricing_engine = PricingEngine(self.config_store, utcnow=utcnow, localnow=localnow)
        self.prep_time_calculator = PrepTimeCalculator(self.config_store)
        self.loyalty_engine = LoyaltyEngine(self.config_store)
        self.audit_logger = AuditLogger(persistence)

    async def warm_cache(self):
        self.logger.info("Warming business rules cache")
        await self.config_store.warm_cache()

    async def validate_order(self, order_id: uuid.UUID, items: Sequence[OrderItem]) -> OrderValidationResult:
        """Check availability of every line and audit the outcome."""
        with order_context(order_id=order_id), self.metrics.timer(AVAILABILITY):
            result = await self.availability_engine.validate_order_items(items)

            if result.is_valid:
                effect = "All items available"
            else:
                effect = f"{len(result.errors)} items unavailable"

            await self.audit_logger.log_availability_check(
                order_id,
                {
                    "items_checked": len(items),
                    "is_valid": result.is_valid,
                    "errors_count": len(result.errors),
                },
                effect
            )

        return result

    async def calculate_price(
        self,
        order_id: uuid.UUID,
        items: Sequence[PricingOrderItem],
        strategy: Optional[CombinationStrategy] = None
    ) -> OrderPricingResult:
        """Price an order, auditing each applied rule and then a summary."""
        strategy = strategy or self.default_strategy

        with order_context(order_id=order_id), self.metrics.timer(PRICING):
            result = await self.pricing_engine.calculate_order_price(items, strategy)

            for applied_rule in result.applied_rules:
                await self.audit_logger.log_pricing_application(
                    order_id,
                    applied_rule.rule_id,
                    {
                        "rule_type": applied_rule.rule_type.value,
                        "description": applied_rule.description,
                        "discount_amount": str(applied_rule.discount_amount),
                    },
                    f"Applied: {applied_rule.description}"
                )

            await self.audit_logger.log_pricing_application(
                order_id,
                None,
                {
                    "base_price": str(result.base_price),
                    "final_price": str(result.final_price),
                    "total_discount": str(result.total_discount),
                    "rules_applied": len(result.applied_rules),
                    "strategy": result.strategy.value,
                },
                f"Applied {len(result.applied_rules)} rules, discount: ${result.total_discount:.2f}"
            )

        return result

    async def estimate_prep_time(self, items: Sequence[PrepTimeOrderItem]) -> PrepTimeEstimate:
        with self.metrics.timer(PREP_TIME):
            return await self.prep_time_calculator.estimate(items)

    async def award_loyalty_points(
        self,
        order_id: uuid.UUID,
        customer_id: int,
        order_total: Decimal,
        items: Sequence[LoyaltyOrderItem]
    ) -> Optional[int]:
        """Award points for a completed order.

        Returns the points awarded, or None when calculation or the award
        failed. Failures are logged and never raised to the caller.
        """
        with order_context(order_id=order_id, customer_id=customer_id), self.metrics.timer(LOYALTY):
            try:
                calculation = await self.loyalty_engine.calculate_points(order_total, items)
                customer_loyalty = await self.loyalty_engine.award_points(customer_id, calculation.total_points)
            except Exception as e:
                self.logger.error(
                    "Failed to award loyalty points",
                    order_id=str(order_id),
                    customer_id=customer_id,
                    error=str(e)
                )
                return None

            await self.audit_logger.log_loyalty_award(
                order_id,
                {
                    "customer_id": customer_id,
                    "order_total": str(calculation.order_total),
                    "base_points": calculation.base_points,
                    "bonus_points": calculation.bonus_points,
                    "total_points": calculation.total_points,
                    "new_balance": customer_loyalty.points_balance,
                    "lifetime_points": customer_loyalty.lifetime_points,
                },
                f"Awarded {calculation.total_points} points "
                f"(base: {calculation.base_points}, bonus: {calculation.bonus_points})"
            )

        return calculation.total_points

    # Admin surface

    async def invalidate_cache(self, category: Optional[str] = None):
        """Invalidate one category, or every category when none is given."""
        if category is None:
            await self.config_store.invalidate_all()
        else:
            await self.config_store.invalidate_cache(category)

    async def check_availability(self, coffee_id: int) -> CoffeeAvailability:
        return await self.availability_engine.check_coffee_availability(coffee_id)

    async def update_availability(
        self,
        coffee_id: int,
        status: AvailabilityStatus,
        reason: Optional[str] = None
    ) -> CoffeeAvailability:
        return await self.availability_engine.update_availability(coffee_id, status, reason)

    async def get_customer_balance(self, customer_id: int) -> int:
        return await self.loyalty_engine.get_customer_balance(customer_id)

    async def get_audit_trail(self, order_id: uuid.UUID) -> List[AuditRecord]:
        return await self.audit_logger.get_audit_records(order_id)
