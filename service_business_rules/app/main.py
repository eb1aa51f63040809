"""
Business rules service for the coffee shop backend.

Hosts the rules engine and exposes its admin and diagnostics endpoints.
Order handling calls the engine in process; these routes cover availability
updates, rule inspection, cache control and the audit trail.
"""

import uuid
from typing import Optional

from fastapi import Body

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ServiceException

from .engine import BusinessRulesEngine
from .models import (
    AvailabilityResponse,
    CoffeeAvailability,
    InvalidateCacheRequest,
    LoyaltyBalanceResponse,
    UpdateAvailabilityRequest,
)
from .persistence.postgres import PostgreSQLPersistence


SERVICE_NAME = "business_rules"
SERVICE_PORT = 8020


def _availability_response(availability: CoffeeAvailability) -> AvailabilityResponse:
    return AvailabilityResponse(
        coffee_id=availability.coffee_id,
        status=availability.status,
        reason=availability.reason,
        available_from=availability.available_from,
        available_until=availability.available_until,
        updated_at=availability.updated_at
    )


class BusinessRulesService(BaseService):
    """Business rules service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, persistence=None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config)

        self.persistence = persistence or PostgreSQLPersistence(
            self.config.postgres_dsn,
            min_size=self.config.db_pool_min_size,
            max_size=self.config.db_pool_max_size,
            command_timeout=self.config.db_command_timeout,
            create_schema=self.config.create_schema
        )
        self.engine = BusinessRulesEngine(
            self.persistence,
            cache_ttl_seconds=self.config.cache_ttl_seconds,
            slow_threshold_ms=self.config.slow_operation_threshold_ms,
            collector=self.metrics,
            default_strategy=self.config.default_combination_strategy
        )

        self._setup_business_rules_routes()

    def _setup_business_rules_routes(self):
        """Set up business rules routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Coffee Shop - Business Rules Service",
                "version": "1.0.0",
                "capabilities": ["availability", "pricing", "prep_time", "loyalty", "audit"]
            }

        @self.app.get("/business-rules/availability/{coffee_id}", response_model=AvailabilityResponse)
        async def get_availability(coffee_id: int):
            """Effective availability of a coffee."""
            availability = await self.engine.check_availability(coffee_id)
            return _availability_response(availability)

        @self.app.put("/business-rules/availability/{coffee_id}", response_model=AvailabilityResponse)
        async def update_availability(coffee_id: int, request: UpdateAvailabilityRequest):
            """Set a coffee's availability status."""
            availability = await self.engine.update_availability(coffee_id, request.status, request.reason)

            self.logger.info(
                "Availability changed",
                coffee_id=coffee_id,
                status=request.status.value
            )

            return _availability_response(availability)

        @self.app.get("/business-rules/pricing")
        async def list_pricing_rules():
            """Cached active pricing rules, highest priority first."""
            rules = await self.engine.config_store.get_pricing_rules()
            rules.sort(key=lambda r: r.priority, reverse=True)
            return {
                "rules": [rule.to_dict() for rule in rules],
                "count": len(rules)
            }

        @self.app.get("/business-rules/loyalty-config")
        async def get_loyalty_config():
            config = await self.engine.config_store.get_loyalty_config()
            return config.to_dict()

        @self.app.get("/business-rules/loyalty/{customer_id}", response_model=LoyaltyBalanceResponse)
        async def get_loyalty_balance(customer_id: int):
            balance = await self.engine.get_customer_balance(customer_id)
            return LoyaltyBalanceResponse(customer_id=customer_id, points_balance=balance)

        @self.app.get("/business-rules/metrics")
        async def get_rules_metrics():
            """Cache hit rate and per-operation latency summary."""
            return self.engine.metrics.summary()

        @self.app.get("/business-rules/cache")
        async def get_cache_status():
            return self.engine.config_store.cache_status()

        @self.app.post("/business-rules/cache/invalidate")
        async def invalidate_cache(request: Optional[InvalidateCacheRequest] = Body(None)):
            """Invalidate one rule category, or all of them."""
            category = request.category if request else None
            await self.engine.invalidate_cache(category)

            invalidated = [category.value] if category else list(self.engine.config_store.cache_status())
            self.logger.info("Rule cache invalidated via API", categories=invalidated)

            return {"invalidated": invalidated}

        @self.app.get("/business-rules/audit/{order_id}")
        async def get_audit_trail(order_id: uuid.UUID):
            """Rule audit records for an order, oldest first."""
            records = await self.engine.get_audit_trail(order_id)
            return {
                "order_id": str(order_id),
                "records": [record.to_dict() for record in records],
                "count": len(records)
            }

    async def _check_dependencies(self):
        """Check business rules service dependencies."""
        dependencies = {}

        # Check PostgreSQL
        try:
            if await self.persistence.health_check():
                dependencies["postgres"] = "ok"
            else:
                dependencies["postgres"] = "error"
        except Exception:
            dependencies["postgres"] = "error"

        return dependencies

    async def start(self):
        """Start business rules service components."""
        await self.persistence.start()

        if self.config.warm_cache_on_startup:
            try:
                await self.engine.warm_cache()
            except ServiceException as e:
                # Categories that failed load lazily on first use
                self.logger.warning("Cache warm-up failed", code=e.code, error=e.message)

        self.logger.info("Business rules service started")

    async def stop(self):
        """Stop business rules service components."""
        self.engine.metrics.log_summary()
        await self.persistence.stop()

        self.logger.info("Business rules service stopped")


def create_app():
    """Create business rules service application."""
    service = BusinessRulesService()
    return service.app


if __name__ == "__main__":
    service = BusinessRulesService()
    service.run()
