"""
Redis pub/sub subscriber for the WebSocket gateway.
Listens on the outlet staff and order customer channels and hands each
valid event to the dispatcher together with the channel it came from.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

from shared.config.logging import get_logger
from shared.infrastructure.events import (
    ALL_EVENT_TYPES,
    ORDER_CUSTOMER_PATTERN,
    OUTLET_STAFF_PATTERN,
    get_redis_pool,
)

logger = get_logger(__name__)

REQUIRED_EVENT_FIELDS = {"type", "outlet_id"}
DEFAULT_CHANNELS = [OUTLET_STAFF_PATTERN, ORDER_CUSTOMER_PATTERN]


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_event_schema(data: Any) -> tuple[bool, str | None]:
    """
    Validate an incoming event.

    Returns (is_valid, error_message). Unknown event types are accepted
    with a warning so older gateways keep relaying newer events.
    """
    if not isinstance(data, dict):
        return False, "Event must be a dictionary"

    missing = REQUIRED_EVENT_FIELDS - set(data.keys())
    if missing:
        return False, f"Missing required fields: {sorted(missing)}"

    if data.get("type") not in ALL_EVENT_TYPES:
        logger.warning("Unknown event type received", event_type=data.get("type"))

    if not _is_positive_int(data.get("outlet_id")):
        return False, "outlet_id must be a positive integer"

    for field in ("order_id", "payment_id"):
        if data.get(field) is not None and not _is_positive_int(data[field]):
            return False, f"{field} must be a positive integer"

    return True, None


def _decode(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


async def run_subscriber(
    channels: list[str],
    on_message: Callable[[str, dict], Awaitable[None]],
) -> None:
    """
    Subscribe to channel patterns and dispatch messages forever.

    Args:
        channels: Channel patterns to psubscribe to.
        on_message: Async callback receiving (channel, event dict).
    """
    redis_pool = await get_redis_pool()
    pubsub = redis_pool.pubsub()
    await pubsub.psubscribe(*channels)

    logger.info("Redis subscriber started", channels=channels)

    try:
        async for msg in pubsub.listen():
            if msg is None:
                continue
            # Skip subscription confirmations
            if msg.get("type") not in ("message", "pmessage"):
                continue

            channel = _decode(msg.get("channel"))
            try:
                data = json.loads(msg["data"])
                is_valid, error = validate_event_schema(data)
                if not is_valid:
                    logger.warning("Invalid event schema", error=error, channel=channel)
                    continue
                await on_message(channel, data)
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse Redis message", error=str(e), channel=channel)
            except Exception as e:
                logger.error("Error handling Redis message", error=str(e), exc_info=True)

    except asyncio.CancelledError:
        logger.info("Redis subscriber cancelled")
        raise
    finally:
        await pubsub.punsubscribe(*channels)
        await pubsub.aclose()
