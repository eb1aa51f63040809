"""
Preparation time calculator for the Business Rules Service.
"""

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

from shared.logging import get_logger
from ..cache.config_store import RuleConfigurationStore
from ..errors import CoffeeNotFoundError
from ..models import validate_line


MINIMUM_ESTIMATE_MINUTES = 1


@dataclass(frozen=True)
class PrepTimeOrderItem:
    coffee_id: int
    quantity: int

    def __post_init__(self):
        validate_line(self.coffee_id, self.quantity)


@dataclass
class PrepTimeBreakdown:
    base_time: int
    queue_delay: int
    total_time: int


@dataclass
class PrepTimeEstimate:
    """Minutes until an order is expected to be ready."""
    estimated_minutes: int
    queue_position: int
    breakdown: PrepTimeBreakdown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "estimated_minutes": self.estimated_minutes,
            "queue_position": self.queue_position,
            "breakdown": {
                "base_time": self.breakdown.base_time,
                "queue_delay": self.breakdown.queue_delay,
                "total_time": self.breakdown.total_time,
            },
        }


class PrepTimeCalculator:
    """Estimates ready time from per-coffee settings and the live order queue."""

    def __init__(self, config_store: RuleConfigurationStore):
        self.config_store = config_store
        self.logger = get_logger("business_rules.prep_time")

    async def estimate(self, items: Sequence[PrepTimeOrderItem]) -> PrepTimeEstimate:
        base_time = await self.calculate_base_time(items)
        queue_delay, queue_position = await self.get_queue_delay()

        total_time = base_time + queue_delay

        return PrepTimeEstimate(
            estimated_minutes=max(total_time, MINIMUM_ESTIMATE_MINUTES),
            queue_position=queue_position,
            breakdown=PrepTimeBreakdown(
                base_time=base_time,
                queue_delay=queue_delay,
                total_time=total_time
            )
        )

    async def calculate_base_time(self, items: Sequence[PrepTimeOrderItem]) -> int:
        """Sum of base minutes plus the per-item increment for extra cups."""
        prep_time_config = await self.config_store.get_prep_time_config()

        total_time = 0
        for item in items:
            config = prep_time_config.get(item.coffee_id)
            if config is None:
                raise CoffeeNotFoundError(item.coffee_id)

            total_time += config.base_minutes
            total_time += config.per_additional_item * max(item.quantity - 1, 0)

        return total_time

    async def get_queue_delay(self) -> Tuple[int, int]:
        """Return (minutes of queued work, orders ahead) for pending and preparing orders."""
        queue_position, queue_delay = await self.config_store.persistence.fetch_queue_stats()
        return queue_delay, queue_position
