"""
Event System for realtime notifications via Redis pub/sub.

- event_types.py: event name constants
- event_schema.py: Event dataclass with validation
- channels.py: outlet/order channel naming
- redis_pool.py: shared async client
- circuit_breaker.py: drops events while Redis keeps failing
- publisher.py: publish_event with retry
- routing.py: fan-out to staff and customer channels
"""

from .circuit_breaker import (
    BreakerState,
    PublishBreaker,
    get_publish_breaker,
    reset_publish_breaker,
    backoff_delay,
)
from .event_types import (
    ORDER_CREATED,
    ORDER_STATUS_UPDATED,
    PAYMENT_UPDATED,
    ALL_EVENT_TYPES,
    MAX_EVENT_SIZE,
)
from .event_schema import Event
from .channels import (
    OUTLET_STAFF_PATTERN,
    ORDER_CUSTOMER_PATTERN,
    channel_outlet_staff,
    channel_order_customer,
)
from .redis_pool import get_redis_pool, close_redis_pool
from .publisher import publish_event
from .routing import publish_to_outlet_staff, publish_to_order_customer, route_event

__all__ = [
    # Publish breaker
    "BreakerState",
    "PublishBreaker",
    "get_publish_breaker",
    "reset_publish_breaker",
    "backoff_delay",
    # Event types
    "ORDER_CREATED",
    "ORDER_STATUS_UPDATED",
    "PAYMENT_UPDATED",
    "ALL_EVENT_TYPES",
    "MAX_EVENT_SIZE",
    # Schema
    "Event",
    # Channels
    "OUTLET_STAFF_PATTERN",
    "ORDER_CUSTOMER_PATTERN",
    "channel_outlet_staff",
    "channel_order_customer",
    # Redis
    "get_redis_pool",
    "close_redis_pool",
    # Publishing
    "publish_event",
    "publish_to_outlet_staff",
    "publish_to_order_customer",
    "route_event",
]
