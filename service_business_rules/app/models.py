"""
Domain models for the business rules service.

Rule entities are loaded from PostgreSQL and cached by the configuration
store. They are frozen so cached payloads can be shared between concurrent
readers without copying every record.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from shared.errors import ValidationError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def localnow() -> datetime:
    """Current wall-clock time in the server's local timezone."""
    return datetime.now()


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Coerce a money-like value to Decimal, rejecting floats' binary noise."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number", {"field": field_name, "value": str(value)})
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite", {"field": field_name, "value": str(value)})
    return result


def parse_time_of_day(value: str) -> time:
    """Parse 'HH:MM' (hour 0-23, minute 0-59) into a time; ValueError otherwise."""
    parts = value.split(":") if isinstance(value, str) else []
    if len(parts) != 2:
        raise ValueError(f"Invalid time format '{value}': expected HH:MM")
    try:
        hour = int(parts[0])
        minute = int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid time '{value}': hour and minute must be numbers")
    if not 0 <= hour < 24:
        raise ValueError(f"Hour must be 0-23 in time '{value}'")
    if not 0 <= minute < 60:
        raise ValueError(f"Minute must be 0-59 in time '{value}'")
    return time(hour, minute)


def validate_line(coffee_id: Any, quantity: Any) -> None:
    """Reject order lines with a bad coffee id or a quantity below one."""
    if isinstance(coffee_id, bool) or not isinstance(coffee_id, int):
        raise ValidationError("coffee_id must be an integer", {"coffee_id": coffee_id})
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(
            "quantity must be a positive integer",
            {"coffee_id": coffee_id, "quantity": quantity}
        )


class AvailabilityStatus(str, Enum):
    """Availability states a coffee can be in."""
    AVAILABLE = "available"
    OUT_OF_STOCK = "out_of_stock"
    SEASONAL = "seasonal"
    DISCONTINUED = "discontinued"


class DiscountType(str, Enum):
    """How a rule's discount value is meant to be read."""
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class CombinationStrategy(str, Enum):
    """How several matched discounts merge into one final price."""
    ADDITIVE = "additive"
    MULTIPLICATIVE = "multiplicative"
    BEST_PRICE = "best_price"


class PricingRuleType(str, Enum):
    """Pricing rule types."""
    TIME_BASED = "time_based"
    QUANTITY_BASED = "quantity_based"
    PROMOTIONAL = "promotional"


class CacheCategory(str, Enum):
    """Independently cached rule categories."""
    AVAILABILITY = "availability"
    PRICING = "pricing"
    PREP_TIME = "prep_time"
    LOYALTY = "loyalty"


# Pricing rule payloads. The shape depends on the rule's type column.

class TimeRange(BaseModel):
    """Daily window in HH:MM, start > end wraps past midnight."""
    model_config = ConfigDict(frozen=True)

    start: str
    end: str


class TimeBasedRuleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_ranges: List[TimeRange]
    discount_type: DiscountType
    discount_value: Decimal
    description: Optional[str] = None


class QuantityBasedRuleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_quantity: int
    discount_type: DiscountType
    discount_value: Decimal
    description: Optional[str] = None


class PromotionalRuleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    discount_type: DiscountType
    discount_value: Decimal
    description: Optional[str] = None


RuleConfig = Union[TimeBasedRuleConfig, QuantityBasedRuleConfig, PromotionalRuleConfig]

RULE_CONFIG_MODELS: Dict[PricingRuleType, Type[BaseModel]] = {
    PricingRuleType.TIME_BASED: TimeBasedRuleConfig,
    PricingRuleType.QUANTITY_BASED: QuantityBasedRuleConfig,
    PricingRuleType.PROMOTIONAL: PromotionalRuleConfig,
}


@dataclass(frozen=True)
class CoffeeAvailability:
    """Availability record for one coffee."""
    coffee_id: int
    status: AvailabilityStatus
    reason: Optional[str] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_available(self) -> bool:
        return self.status == AvailabilityStatus.AVAILABLE


@dataclass(frozen=True)
class PricingRule:
    """Pricing rule with its decoded, validated payload."""
    rule_id: uuid.UUID
    rule_type: PricingRuleType
    priority: int
    rule_config: RuleConfig
    coffee_ids: Optional[Tuple[int, ...]] = None
    is_active: bool = True
    valid_from: datetime = field(default_factory=utcnow)
    valid_until: Optional[datetime] = None

    @property
    def description(self) -> Optional[str]:
        return self.rule_config.description

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "rule_type": self.rule_type.value,
            "priority": self.priority,
            "rule_config": self.rule_config.model_dump(mode="json"),
            "coffee_ids": list(self.coffee_ids) if self.coffee_ids is not None else None,
            "is_active": self.is_active,
            "valid_from": self.valid_from.isoformat(),
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
        }


@dataclass(frozen=True)
class CoffeeBaseTime:
    """Preparation time settings for one coffee."""
    coffee_id: int
    base_minutes: int
    per_additional_item: int
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class LoyaltyConfig:
    """Singleton loyalty program configuration."""
    points_per_dollar: Decimal
    bonus_multipliers: Dict[int, Decimal] = field(default_factory=dict)
    config_id: int = 1
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config_id": self.config_id,
            "points_per_dollar": str(self.points_per_dollar),
            "bonus_multipliers": {str(k): str(v) for k, v in self.bonus_multipliers.items()},
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class CustomerLoyalty:
    """Customer loyalty balance."""
    customer_id: int
    points_balance: int
    lifetime_points: int


@dataclass
class AuditRecord:
    """One row of the rule audit trail."""
    audit_id: uuid.UUID
    order_id: uuid.UUID
    rule_type: str
    rule_id: Optional[uuid.UUID]
    rule_data: Dict[str, Any]
    effect: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "audit_id": str(self.audit_id),
            "order_id": str(self.order_id),
            "rule_type": self.rule_type,
            "rule_id": str(self.rule_id) if self.rule_id else None,
            "rule_data": self.rule_data,
            "effect": self.effect,
            "created_at": self.created_at.isoformat(),
        }


class AvailabilityResponse(BaseModel):
    coffee_id: int
    status: AvailabilityStatus
    reason: Optional[str] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    updated_at: datetime


class UpdateAvailabilityRequest(BaseModel):
    status: AvailabilityStatus = Field(..., description="New availability status")
    reason: Optional[str] = Field(None, max_length=500, description="Reason shown to customers")


class InvalidateCacheRequest(BaseModel):
    category: Optional[CacheCategory] = Field(None, description="Category to invalidate, all when omitted")


class LoyaltyBalanceResponse(BaseModel):
    customer_id: int
    points_balance: int
