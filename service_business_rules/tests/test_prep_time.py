"""
Unit tests for the preparation time calculator.
"""

import pytest

from service_business_rules.app.cache.config_store import RuleConfigurationStore
from service_business_rules.app.errors import CoffeeNotFoundError, DatabaseError
from service_business_rules.app.prep_time.calculator import (
    PrepTimeBreakdown,
    PrepTimeCalculator,
    PrepTimeEstimate,
    PrepTimeOrderItem,
)
from shared.test_helpers import FakeClock, InMemoryPersistence, TestDataFactory


class TestPrepTimeCalculator:
    """Test cases for PrepTimeCalculator."""

    @pytest.fixture
    def persistence(self):
        return InMemoryPersistence(prep_time=[
            TestDataFactory.prep_time_row(1, base_minutes=5, per_additional_item=2),
            TestDataFactory.prep_time_row(2, base_minutes=3, per_additional_item=0),
        ])

    @pytest.fixture
    def calculator(self, persistence):
        return PrepTimeCalculator(RuleConfigurationStore(persistence, clock=FakeClock()))

    @pytest.mark.asyncio
    async def test_additional_items_add_per_item_time(self, calculator):
        """Test base 5, +2 per extra cup, three cups is 9 minutes."""
        estimate = await calculator.estimate([PrepTimeOrderItem(coffee_id=1, quantity=3)])

        assert estimate.estimated_minutes == 9
        assert estimate.queue_position == 0
        assert estimate.breakdown.base_time == 9
        assert estimate.breakdown.queue_delay == 0
        assert estimate.breakdown.total_time == 9

    @pytest.mark.asyncio
    async def test_lines_are_summed(self, calculator):
        estimate = await calculator.estimate([
            PrepTimeOrderItem(coffee_id=1, quantity=1),
            PrepTimeOrderItem(coffee_id=2, quantity=4),
        ])

        assert estimate.breakdown.base_time == 8

    @pytest.mark.asyncio
    async def test_queue_adds_delay_and_position(self, calculator, persistence):
        persistence.queue = (3, 14)

        estimate = await calculator.estimate([PrepTimeOrderItem(coffee_id=1, quantity=1)])

        assert estimate.queue_position == 3
        assert estimate.breakdown.queue_delay == 14
        assert estimate.estimated_minutes == 19

    @pytest.mark.asyncio
    async def test_estimate_is_at_least_one_minute(self, calculator):
        estimate = await calculator.estimate([])

        assert estimate.breakdown.total_time == 0
        assert estimate.estimated_minutes == 1

    @pytest.mark.asyncio
    async def test_unknown_coffee(self, calculator):
        with pytest.raises(CoffeeNotFoundError) as exc_info:
            await calculator.estimate([PrepTimeOrderItem(coffee_id=77, quantity=1)])

        assert exc_info.value.status_code == 404
        assert exc_info.value.details == {"coffee_id": 77}

    @pytest.mark.asyncio
    async def test_queue_query_failure_propagates(self, calculator, persistence):
        persistence.fail_on.add("fetch_queue_stats")

        with pytest.raises(DatabaseError):
            await calculator.estimate([PrepTimeOrderItem(coffee_id=1, quantity=1)])

    def test_to_dict(self):
        estimate = PrepTimeEstimate(
            estimated_minutes=12,
            queue_position=2,
            breakdown=PrepTimeBreakdown(base_time=5, queue_delay=7, total_time=12)
        )

        assert estimate.to_dict() == {
            "estimated_minutes": 12,
            "queue_position": 2,
            "breakdown": {"base_time": 5, "queue_delay": 7, "total_time": 12},
        }
