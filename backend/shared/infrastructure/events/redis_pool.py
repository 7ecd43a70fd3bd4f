"""
Process-wide async Redis client.

The POS API publishes through it, the WebSocket gateway subscribes
through it and both health checks ping it. ``redis.from_url`` only sets
up a connection pool and does no I/O, so creating the client on first
use needs no lock inside the event loop.
"""

from __future__ import annotations

import redis.asyncio as redis

from shared.config.settings import settings, REDIS_URL
from shared.config.logging import get_logger

logger = get_logger(__name__)

_client: redis.Redis | None = None


def _build_client() -> redis.Redis:
    return redis.from_url(
        REDIS_URL,
        max_connections=settings.redis_pool_max_connections,
        decode_responses=True,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_timeout=settings.redis_socket_timeout,
        health_check_interval=30,
    )


async def get_redis_pool() -> redis.Redis:
    global _client
    if _client is None:
        _client = _build_client()
        logger.info("Redis client created", max_connections=settings.redis_pool_max_connections)
    return _client


async def close_redis_pool() -> None:
    """Called from both services' lifespans on shutdown."""
    global _client
    client, _client = _client, None
    if client is not None:
        await client.aclose()
        logger.info("Redis client closed")
