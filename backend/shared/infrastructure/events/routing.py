"""
Event Routing Helpers.

Staff channels receive every event of their outlet; the customer channel
of an order receives the events about that order.
"""

from __future__ import annotations

import redis.asyncio as redis

from .event_schema import Event
from .publisher import publish_event
from .channels import channel_outlet_staff, channel_order_customer


async def publish_to_outlet_staff(redis_client: redis.Redis, event: Event) -> int:
    """Publish to the POS/KDS channel of the event's outlet."""
    return await publish_event(redis_client, channel_outlet_staff(event.outlet_id), event)


async def publish_to_order_customer(redis_client: redis.Redis, event: Event) -> int:
    """Publish to the tracking channel of the event's order."""
    if event.order_id is None:
        return 0
    return await publish_event(redis_client, channel_order_customer(event.order_id), event)


async def route_event(redis_client: redis.Redis, event: Event) -> int:
    """
    Publish an event to every channel it belongs to.

    Returns the total number of subscribers reached.
    """
    sent = await publish_to_outlet_staff(redis_client, event)
    sent += await publish_to_order_customer(redis_client, event)
    return sent
