"""
Core event publishing with retry, size check and the publish breaker.
"""

from __future__ import annotations

import asyncio

import redis.asyncio as redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from .event_types import MAX_EVENT_SIZE
from .event_schema import Event
from .circuit_breaker import backoff_delay, get_publish_breaker

logger = get_logger(__name__)


def _validate_event_size(event_json: str, event_type: str) -> None:
    """Raise ValueError if the serialized event exceeds MAX_EVENT_SIZE."""
    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(
            f"Event {event_type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )


async def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: Event,
) -> int:
    """
    Publish an event to a Redis channel.

    Args:
        redis_client: Async Redis client.
        channel: Redis channel name.
        event: Event to publish.

    Returns:
        Number of subscribers that received the message, 0 when the publish
        breaker is open.

    Raises:
        ValueError: If the event is too large.
        redis.RedisError: If every retry failed.
    """
    event_json = event.to_json()
    _validate_event_size(event_json, event.type)

    breaker = get_publish_breaker()
    if not breaker.allow():
        logger.warning(
            "Event dropped, publish breaker open",
            channel=channel,
            event_type=event.type,
        )
        return 0

    max_retries = settings.redis_publish_max_retries
    last_error: Exception | None = None
    for attempt in range(max_retries):
        try:
            result = await redis_client.publish(channel, event_json)
            breaker.succeeded()
            return result
        except (redis.RedisError, OSError) as e:
            last_error = e
            if attempt < max_retries - 1:
                delay = backoff_delay(attempt, settings.redis_publish_retry_delay)
                logger.warning(
                    "Redis publish failed, retrying",
                    channel=channel,
                    event_type=event.type,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    "Redis publish failed after all retries",
                    channel=channel,
                    event_type=event.type,
                    error=str(e),
                )

    breaker.failed()
    raise last_error  # type: ignore[misc]
