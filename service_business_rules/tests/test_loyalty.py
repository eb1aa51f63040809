"""
Unit tests for the loyalty engine.
"""

from decimal import Decimal

import pytest

from service_business_rules.app.cache.config_store import RuleConfigurationStore
from service_business_rules.app.errors import CalculationError, ConfigurationNotFoundError, ValidationError
from service_business_rules.app.loyalty.engine import LoyaltyEngine, LoyaltyOrderItem, floor_points
from shared.test_helpers import FakeClock, InMemoryPersistence, TestDataFactory


class TestLoyaltyPointCalculation:
    """Point calculation from the loyalty configuration."""

    @pytest.fixture
    def persistence(self):
        return InMemoryPersistence(loyalty=TestDataFactory.loyalty_config_row("0.1", {"1": 2, "2": "0.5"}))

    @pytest.fixture
    def engine(self, persistence):
        return LoyaltyEngine(RuleConfigurationStore(persistence, clock=FakeClock()))

    @pytest.mark.asyncio
    async def test_base_points(self, engine):
        """Test 0.1 points per dollar on $100 earns 10 points."""
        calculation = await engine.calculate_points(Decimal("100"), [
            LoyaltyOrderItem(coffee_id=5, quantity=1, price=Decimal("100")),
        ])

        assert calculation.base_points == 10
        assert calculation.bonus_points == 0
        assert calculation.total_points == 10

    @pytest.mark.asyncio
    async def test_bonus_multiplier(self, engine):
        """Test a $40 item with multiplier 2 adds 4 bonus points."""
        calculation = await engine.calculate_points(Decimal("100"), [
            LoyaltyOrderItem(coffee_id=1, quantity=2, price=Decimal("20")),
            LoyaltyOrderItem(coffee_id=5, quantity=1, price=Decimal("60")),
        ])

        assert calculation.base_points == 10
        assert calculation.bonus_points == 4
        assert calculation.total_points == 14
        assert calculation.order_total == Decimal("100")

    @pytest.mark.asyncio
    async def test_base_points_are_floored(self, engine):
        calculation = await engine.calculate_points(Decimal("19.99"), [])

        assert calculation.base_points == 1

    @pytest.mark.asyncio
    async def test_bonus_summed_before_flooring(self, engine):
        """Test fractional per-item bonuses add up before the floor."""
        calculation = await engine.calculate_points(Decimal("10"), [
            LoyaltyOrderItem(coffee_id=1, quantity=1, price=Decimal("5")),
            LoyaltyOrderItem(coffee_id=1, quantity=1, price=Decimal("5")),
        ])

        # 0.5 + 0.5 bonus points
        assert calculation.bonus_points == 1

    @pytest.mark.asyncio
    async def test_multiplier_below_one_never_deducts(self, engine):
        calculation = await engine.calculate_points(Decimal("50"), [
            LoyaltyOrderItem(coffee_id=2, quantity=1, price=Decimal("50")),
        ])

        assert calculation.base_points == 5
        assert calculation.bonus_points == 0
        assert calculation.total_points == 5

    @pytest.mark.asyncio
    async def test_points_out_of_storage_range(self, engine):
        with pytest.raises(CalculationError) as exc_info:
            await engine.calculate_points(Decimal("1e12"), [])

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_negative_order_total(self, engine):
        with pytest.raises(ValidationError):
            await engine.calculate_points(Decimal("-1"), [])

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        engine = LoyaltyEngine(RuleConfigurationStore(InMemoryPersistence(), clock=FakeClock()))

        with pytest.raises(ConfigurationNotFoundError):
            await engine.calculate_points(Decimal("10"), [])

    def test_floor_points_rejects_non_finite(self):
        with pytest.raises(CalculationError):
            floor_points(Decimal("Infinity"), "base points")

    def test_negative_item_price(self):
        with pytest.raises(ValidationError):
            LoyaltyOrderItem(coffee_id=1, quantity=1, price=Decimal("-2"))


class TestLoyaltyBalances:
    """Awarding points and reading balances."""

    @pytest.fixture
    def persistence(self):
        return InMemoryPersistence(loyalty=TestDataFactory.loyalty_config_row())

    @pytest.fixture
    def engine(self, persistence):
        return LoyaltyEngine(RuleConfigurationStore(persistence, clock=FakeClock()))

    @pytest.mark.asyncio
    async def test_first_award_creates_record(self, engine):
        loyalty = await engine.award_points(7, 25)

        assert loyalty.customer_id == 7
        assert loyalty.points_balance == 25
        assert loyalty.lifetime_points == 25

    @pytest.mark.asyncio
    async def test_awards_accumulate(self, engine, persistence):
        await engine.award_points(7, 25)
        loyalty = await engine.award_points(7, 10)

        assert loyalty.points_balance == 35
        assert loyalty.lifetime_points == 35
        assert persistence.calls["increment_customer_loyalty"] == 2

    @pytest.mark.asyncio
    async def test_balance_defaults_to_zero(self, engine):
        assert await engine.get_customer_balance(404) == 0

    @pytest.mark.asyncio
    async def test_balance_after_award(self, engine):
        await engine.award_points(8, 12)

        assert await engine.get_customer_balance(8) == 12

    @pytest.mark.parametrize("points", [-1, 2.5, True])
    @pytest.mark.asyncio
    async def test_invalid_award(self, engine, points):
        with pytest.raises(ValidationError):
            await engine.award_points(7, points)
