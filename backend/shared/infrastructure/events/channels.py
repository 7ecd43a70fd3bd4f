"""
Redis Channel Naming.

Every channel is scoped by an outlet or by a single order, so one outlet
never observes another outlet's events.
"""

from __future__ import annotations

# Patterns used by the WebSocket gateway subscriber
OUTLET_STAFF_PATTERN = "outlet:*:staff"
ORDER_CUSTOMER_PATTERN = "order:*:customer"


def _validate_positive_id(id_value: int, name: str) -> None:
    """Validate that ID is a positive integer."""
    if not isinstance(id_value, int) or isinstance(id_value, bool) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_outlet_staff(outlet_id: int) -> str:
    """Channel for POS and kitchen displays of an outlet."""
    _validate_positive_id(outlet_id, "outlet_id")
    return f"outlet:{outlet_id}:staff"


def channel_order_customer(order_id: int) -> str:
    """Channel for the customer tracking page of one order."""
    _validate_positive_id(order_id, "order_id")
    return f"order:{order_id}:customer"
