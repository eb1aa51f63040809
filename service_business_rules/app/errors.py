"""
Error types for the business rules service.

Every error carries a stable code and the HTTP status the API layer maps it
to. Storage and request validation errors come from shared.errors and are
re-exported here so engines import a single module.
"""

from typing import Any, Dict, Optional

from shared.errors import DatabaseError, ServiceException, ValidationError

__all__ = [
    "BusinessRulesError",
    "ValidationError",
    "DatabaseError",
    "UnavailableItemError",
    "InvalidPricingRuleError",
    "InvalidConfigurationError",
    "ConfigurationNotFoundError",
    "CalculationError",
    "JsonError",
    "CoffeeNotFoundError",
    "UserNotFoundError",
    "OrderNotFoundError",
]

BusinessRulesError = ServiceException


class UnavailableItemError(ServiceException):
    """An ordered coffee cannot be sold right now."""

    def __init__(self, coffee_id: int, reason: str):
        super().__init__(
            "UNAVAILABLE_ITEM",
            f"Coffee item {coffee_id} is unavailable: {reason}",
            {"coffee_id": coffee_id, "reason": reason}
        )


class InvalidPricingRuleError(ServiceException):
    """A persisted pricing rule has an invalid payload or values."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_PRICING_RULE", f"Invalid pricing rule configuration: {message}", details)


class InvalidConfigurationError(ServiceException):
    """Persisted rule configuration failed validation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_CONFIGURATION", f"Invalid configuration: {message}", details)


class ConfigurationNotFoundError(ServiceException):
    """A required configuration row is missing."""

    status_code = 404

    def __init__(self, name: str):
        super().__init__("CONFIGURATION_NOT_FOUND", f"Configuration not found: {name}", {"configuration": name})


class CalculationError(ServiceException):
    """A computed value cannot be represented."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("CALCULATION_ERROR", f"Calculation error: {message}", details)


class JsonError(ServiceException):
    """A stored JSON document could not be decoded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("JSON_ERROR", f"JSON error: {message}", details)


class CoffeeNotFoundError(ServiceException):
    status_code = 404

    def __init__(self, coffee_id: int):
        super().__init__("COFFEE_NOT_FOUND", f"Coffee not found: {coffee_id}", {"coffee_id": coffee_id})


class UserNotFoundError(ServiceException):
    status_code = 404

    def __init__(self, user_id: int):
        super().__init__("USER_NOT_FOUND", f"User not found: {user_id}", {"user_id": user_id})


class OrderNotFoundError(ServiceException):
    status_code = 404

    def __init__(self, order_id: Any):
        super().__init__("ORDER_NOT_FOUND", f"Order not found: {order_id}", {"order_id": str(order_id)})
