"""
Shared utilities for the coffee shop business rules service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with order correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton (health, metrics, error handlers)
- test_helpers: Row factories and an in-memory persistence double

Any cross-service logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
