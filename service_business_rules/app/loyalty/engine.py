"""
Loyalty engine for the Business Rules Service.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Sequence

from shared.logging import get_logger
from ..cache.config_store import RuleConfigurationStore
from ..errors import CalculationError, ValidationError
from ..models import CustomerLoyalty, to_decimal, validate_line


# Balances are stored as 32-bit integers
MAX_POINTS = 2 ** 31 - 1
MIN_POINTS = -(2 ** 31)


@dataclass(frozen=True)
class LoyaltyOrderItem:
    """Order line with the price actually charged per unit."""
    coffee_id: int
    quantity: int
    price: Decimal

    def __post_init__(self):
        validate_line(self.coffee_id, self.quantity)
        price = to_decimal(self.price, "price")
        if price < 0:
            raise ValidationError("price must be non-negative", {"coffee_id": self.coffee_id})
        object.__setattr__(self, "price", price)


@dataclass
class LoyaltyCalculation:
    base_points: int
    bonus_points: int
    total_points: int
    order_total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_points": self.base_points,
            "bonus_points": self.bonus_points,
            "total_points": self.total_points,
            "order_total": str(self.order_total),
        }


def floor_points(value: Decimal, label: str) -> int:
    """Floor a point amount, rejecting values that cannot be stored."""
    if not value.is_finite():
        raise CalculationError(f"Failed to convert {label}: value is not finite", {label: str(value)})

    points = math.floor(value)
    if not MIN_POINTS <= points <= MAX_POINTS:
        raise CalculationError(f"Failed to convert {label}: {points} is out of range", {label: str(points)})
    return points


class LoyaltyEngine:
    """Computes and awards loyalty points."""

    def __init__(self, config_store: RuleConfigurationStore):
        self.config_store = config_store
        self.logger = get_logger("business_rules.loyalty")

    async def calculate_points(
        self,
        order_total: Decimal,
        items: Sequence[LoyaltyOrderItem]
    ) -> LoyaltyCalculation:
        """Points for an order.

        Base points are the floored order total times points_per_dollar. Items
        with a bonus multiplier m earn item_total * points_per_dollar * (m - 1)
        on top; the bonus is summed over items and floored once. A multiplier
        below one never takes points away.
        """
        order_total = to_decimal(order_total, "order_total")
        if order_total < 0:
            raise ValidationError("order_total must be non-negative", {"order_total": str(order_total)})

        config = await self.config_store.get_loyalty_config()

        base_points = floor_points(order_total * config.points_per_dollar, "base points")

        bonus = Decimal(0)
        for item in items:
            multiplier = config.bonus_multipliers.get(item.coffee_id)
            if multiplier is None:
                continue
            item_total = item.price * item.quantity
            bonus += item_total * config.points_per_dollar * (multiplier - 1)

        bonus_points = max(floor_points(bonus, "bonus points"), 0)

        total_points = base_points + bonus_points
        if total_points > MAX_POINTS:
            raise CalculationError(
                f"Failed to convert total points: {total_points} is out of range",
                {"total_points": str(total_points)}
            )

        return LoyaltyCalculation(
            base_points=base_points,
            bonus_points=bonus_points,
            total_points=total_points,
            order_total=order_total
        )

    async def award_points(self, customer_id: int, points: int) -> CustomerLoyalty:
        """Add points to a customer's balance and lifetime total atomically."""
        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValidationError("points must be a non-negative integer", {"points": points})

        row = await self.config_store.persistence.increment_customer_loyalty(customer_id, points)

        loyalty = CustomerLoyalty(
            customer_id=row["customer_id"],
            points_balance=row["points_balance"],
            lifetime_points=row["lifetime_points"]
        )

        self.logger.info(
            "Loyalty points awarded",
            customer_id=customer_id,
            points=points,
            points_balance=loyalty.points_balance
        )

        return loyalty

    async def get_customer_balance(self, customer_id: int) -> int:
        """Current balance, 0 for customers who never earned points."""
        balance = await self.config_store.persistence.fetch_customer_points_balance(customer_id)
        return balance if balance is not None else 0
