"""
Structured logging for the business rules service.

Every event carries the service and component taken from the logger name
("business_rules.pricing") plus whichever correlation fields are set for the
current task: the HTTP request id and the order being evaluated.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
order_id_var: ContextVar[Optional[str]] = ContextVar('order_id', default=None)
customer_id_var: ContextVar[Optional[str]] = ContextVar('customer_id', default=None)

CORRELATION_VARS: Dict[str, ContextVar] = {
    "request_id": request_id_var,
    "order_id": order_id_var,
    "customer_id": customer_id_var,
}


def configure_logging(service_name: str, log_level: str = "info", json_output: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Local development gets the coloured console renderer; every other
    environment logs one JSON object per line.
    """
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_component,
            add_correlation_context,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_component(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Split "business_rules.cache" into service and component fields."""
    logger_name = event_dict.get("logger", "")
    service_name, _, component = logger_name.partition(".")
    if component:
        event_dict["service"] = service_name
        event_dict["component"] = component
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # Explicit keyword fields on the call win over the context
    for field, var in CORRELATION_VARS.items():
        value = var.get()
        if value is not None:
            event_dict.setdefault(field, value)
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request id for the current task, generating one if absent."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


@contextmanager
def order_context(order_id: Optional[Any] = None, customer_id: Optional[Any] = None):
    """Bind order and customer fields for the duration of the block.

    On exit the previous values are restored, so an in-process caller that
    evaluates several orders in one task never leaks one order's fields
    into the next.
    """
    tokens = []
    if order_id is not None:
        tokens.append((order_id_var, order_id_var.set(str(order_id))))
    if customer_id is not None:
        tokens.append((customer_id_var, customer_id_var.set(str(customer_id))))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def clear_context():
    for var in CORRELATION_VARS.values():
        var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
