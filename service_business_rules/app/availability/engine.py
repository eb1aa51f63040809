"""
Availability engine for the Business Rules Service.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from shared.logging import get_logger
from ..cache.config_store import RuleConfigurationStore
from ..errors import BusinessRulesError, UnavailableItemError
from ..models import AvailabilityStatus, CacheCategory, CoffeeAvailability, utcnow, validate_line


DEFAULT_UNAVAILABLE_REASONS = {
    AvailabilityStatus.OUT_OF_STOCK: "Out of stock",
    AvailabilityStatus.SEASONAL: "Seasonal item not currently available",
    AvailabilityStatus.DISCONTINUED: "Item has been discontinued",
}

WINDOW_FORMAT = "%Y-%m-%d %H:%M"


@dataclass(frozen=True)
class OrderItem:
    """Order line as seen by the availability check."""
    coffee_id: int
    quantity: int

    def __post_init__(self):
        validate_line(self.coffee_id, self.quantity)


@dataclass
class ItemValidationError:
    """Why one ordered coffee cannot be sold."""
    coffee_id: int
    reason: str
    coffee_name: Optional[str] = None


@dataclass
class OrderValidationResult:
    """Outcome of checking every line of an order."""
    is_valid: bool
    errors: List[ItemValidationError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def raise_if_invalid(self):
        """Raise UnavailableItemError for the first rejected line."""
        if self.errors:
            first = self.errors[0]
            raise UnavailableItemError(first.coffee_id, first.reason)


class AvailabilityEngine:
    """Decides whether coffees can be ordered right now."""

    def __init__(
        self,
        config_store: RuleConfigurationStore,
        utcnow: Callable[[], datetime] = utcnow
    ):
        self.config_store = config_store
        self.utcnow = utcnow
        self.logger = get_logger("business_rules.availability")

    async def check_coffee_availability(self, coffee_id: int) -> CoffeeAvailability:
        """Effective availability of a coffee, with its seasonal window applied.

        A coffee without a record is available. A record whose window does not
        include the current instant is reported as seasonal with a generated
        reason, whatever its stored status.
        """
        availability_rules = await self.config_store.get_availability_rules()

        availability = availability_rules.get(coffee_id)
        if availability is None:
            availability = CoffeeAvailability(
                coffee_id=coffee_id,
                status=AvailabilityStatus.AVAILABLE,
                updated_at=self.utcnow()
            )

        now = self.utcnow()

        if availability.available_from is not None and now < availability.available_from:
            return replace(
                availability,
                status=AvailabilityStatus.SEASONAL,
                reason=f"Not available until {availability.available_from.strftime(WINDOW_FORMAT)}"
            )

        if availability.available_until is not None and now > availability.available_until:
            return replace(
                availability,
                status=AvailabilityStatus.SEASONAL,
                reason=f"No longer available after {availability.available_until.strftime(WINDOW_FORMAT)}"
            )

        return availability

    async def validate_order_items(self, items: Sequence[OrderItem]) -> OrderValidationResult:
        """Check every line; one error per unavailable coffee, never stopping early."""
        errors: List[ItemValidationError] = []
        warnings: List[str] = []

        for item in items:
            try:
                availability = await self.check_coffee_availability(item.coffee_id)
            except BusinessRulesError as e:
                self.logger.warning(
                    "Unable to verify availability",
                    coffee_id=item.coffee_id,
                    code=e.code,
                    error=e.message
                )
                errors.append(ItemValidationError(
                    coffee_id=item.coffee_id,
                    reason=f"Unable to verify availability: {e.message}"
                ))
                continue

            if availability.status == AvailabilityStatus.AVAILABLE:
                continue

            errors.append(ItemValidationError(
                coffee_id=item.coffee_id,
                reason=availability.reason or DEFAULT_UNAVAILABLE_REASONS[availability.status]
            ))

        return OrderValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings
        )

    async def update_availability(
        self,
        coffee_id: int,
        status: AvailabilityStatus,
        reason: Optional[str] = None
    ) -> CoffeeAvailability:
        """Persist a new status and drop the cached availability map."""
        status = AvailabilityStatus(status)
        row = await self.config_store.persistence.upsert_availability(coffee_id, status.value, reason)
        await self.config_store.invalidate_cache(CacheCategory.AVAILABILITY)

        return CoffeeAvailability(
            coffee_id=row["coffee_id"],
            status=AvailabilityStatus(row["status"]),
            reason=row["reason"],
            available_from=row["available_from"],
            available_until=row["available_until"],
            updated_at=row["updated_at"],
        )
