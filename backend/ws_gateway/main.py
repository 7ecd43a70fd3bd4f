"""
WebSocket Gateway main application.

Relays order and payment events from Redis to:
- staff screens (POS, kitchen) on /ws/outlets/{outlet_id}?token=<JWT>
- customer tracking pages on /ws/orders/{order_id}?code=<order code>

Events are refetch hints; clients fall back to polling the REST API.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config.constants import KITCHEN_ACCESS_ROLES
from shared.config.logging import audit_ws_connection, setup_logging, ws_gateway_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db_context
from shared.infrastructure.events import close_redis_pool, get_redis_pool
from shared.security.auth import verify_jwt
from pos_api.services.domain import NotFound, OrderService
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.redis_subscriber import DEFAULT_CHANNELS, run_subscriber


manager = ConnectionManager()

# Timeout for the order code lookup so the event loop never waits on the DB
DB_LOOKUP_TIMEOUT = 2.0
HEARTBEAT_CLEANUP_INTERVAL = 30


async def dispatch_event(channel: str, event: dict[str, Any]) -> int:
    """
    Deliver an event to the connections of the channel it arrived on.

    Each event is published once per channel, so the staff copy goes to
    outlet connections and the customer copy to order connections.
    """
    if channel.startswith("outlet:"):
        sent = await manager.send_to_outlet(event["outlet_id"], event)
    elif channel.startswith("order:") and event.get("order_id") is not None:
        sent = await manager.send_to_order(event["order_id"], event)
    else:
        logger.warning("Event on unexpected channel", channel=channel, event_type=event.get("type"))
        return 0

    if sent:
        logger.debug("Dispatched event", channel=channel, event_type=event.get("type"), clients=sent)
    return sent


async def start_redis_subscriber() -> None:
    try:
        await run_subscriber(DEFAULT_CHANNELS, dispatch_event)
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Redis subscriber error", error=str(e), exc_info=True)


async def start_heartbeat_cleanup() -> None:
    """Periodically drop connections that stopped sending heartbeats."""
    while True:
        try:
            await asyncio.sleep(HEARTBEAT_CLEANUP_INTERVAL)
            cleaned = await manager.cleanup_stale_connections()
            if cleaned > 0:
                logger.info("Cleaned up stale connections", count=cleaned)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in heartbeat cleanup", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Starting WebSocket Gateway", port=settings.ws_gateway_port, env=settings.environment)

    subscriber_task = asyncio.create_task(start_redis_subscriber())
    cleanup_task = asyncio.create_task(start_heartbeat_cleanup())

    yield

    logger.info("Shutting down WebSocket Gateway")
    await manager.shutdown()
    for task in (subscriber_task, cleanup_task):
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    await close_redis_pool()
    logger.info("Redis connection pool closed")


app = FastAPI(
    title="Orixa POS WebSocket Gateway",
    description="Realtime order updates for POS, kitchen and customers",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/ws/health")
def health_check():
    return {
        "status": "healthy",
        "service": "ws-gateway",
        "environment": settings.environment,
        **manager.get_stats(),
    }


@app.get("/ws/health/detailed")
async def detailed_health_check():
    """Verifies Redis connectivity. Returns 503 when Redis is down."""
    checks: dict[str, Any] = {
        "service": "ws-gateway",
        "environment": settings.environment,
        "connections": manager.get_stats(),
        "dependencies": {},
    }
    try:
        redis = await get_redis_pool()
        await redis.ping()
        checks["dependencies"]["redis"] = {"status": "healthy"}
        checks["status"] = "healthy"
    except Exception as e:
        checks["dependencies"]["redis"] = {"status": "unhealthy", "error": str(e)}
        checks["status"] = "degraded"
        return JSONResponse(content=checks, status_code=503)
    return checks


# =============================================================================
# WebSocket Endpoints
# =============================================================================


def _order_code_matches(order_id: int, code: str) -> bool:
    with get_db_context() as db:
        try:
            OrderService(db).get_public_order(order_id, code)
        except NotFound:
            return False
    return True


async def _keep_alive(websocket: WebSocket, endpoint: str, **context: Any) -> None:
    """Answer pings and record heartbeats until the client disconnects."""
    try:
        while True:
            data = await websocket.receive_text()
            if len(data) > settings.ws_max_message_size:
                logger.warning("Message size exceeded limit", endpoint=endpoint, size=len(data), **context)
                await websocket.close(code=1009, reason="Message too large")
                break

            manager.record_heartbeat(websocket)
            if data == "ping" or data == '{"type":"ping"}':
                await websocket.send_text("pong")
            else:
                logger.debug("Unknown client message", endpoint=endpoint, message=data[:100], **context)
    except WebSocketDisconnect:
        audit_ws_connection("DISCONNECT", endpoint, **context)
    finally:
        await manager.disconnect(websocket)


@app.websocket("/ws/outlets/{outlet_id}")
async def outlet_websocket(
    websocket: WebSocket,
    outlet_id: int,
    token: str = Query(..., description="Staff JWT"),
):
    """Staff channel for POS and kitchen screens of one outlet."""
    endpoint = "/ws/outlets"
    try:
        claims = verify_jwt(token)
    except HTTPException as e:
        audit_ws_connection("AUTH_FAILED", endpoint, outlet_id=outlet_id, reason=str(e.detail))
        await websocket.close(code=4001, reason=str(e.detail))
        return

    user_id = int(claims["sub"])
    if not set(claims.get("roles", [])) & KITCHEN_ACCESS_ROLES:
        audit_ws_connection("REJECTED", endpoint, user_id=user_id, outlet_id=outlet_id, reason="role")
        await websocket.close(code=4003, reason="Insufficient role")
        return
    if outlet_id not in claims.get("outlet_ids", []):
        audit_ws_connection("REJECTED", endpoint, user_id=user_id, outlet_id=outlet_id, reason="outlet")
        await websocket.close(code=4003, reason="No access to this outlet")
        return

    try:
        await manager.connect_staff(websocket, outlet_id, user_id)
    except ConnectionError as e:
        audit_ws_connection("REJECTED", endpoint, user_id=user_id, outlet_id=outlet_id, reason=str(e))
        return

    audit_ws_connection("CONNECT", endpoint, user_id=user_id, outlet_id=outlet_id)
    await _keep_alive(websocket, endpoint, user_id=user_id, outlet_id=outlet_id)


@app.websocket("/ws/orders/{order_id}")
async def order_websocket(
    websocket: WebSocket,
    order_id: int,
    code: str = Query(..., min_length=1, max_length=16, description="Order code"),
):
    """Customer channel for tracking a single order."""
    endpoint = "/ws/orders"
    try:
        matches = await asyncio.wait_for(
            asyncio.to_thread(_order_code_matches, order_id, code),
            timeout=DB_LOOKUP_TIMEOUT,
        )
    except asyncio.TimeoutError:
        logger.error("Order lookup timed out", order_id=order_id, timeout=DB_LOOKUP_TIMEOUT)
        await websocket.close(code=1013, reason="Try again later")
        return

    if not matches:
        audit_ws_connection("AUTH_FAILED", endpoint, order_id=order_id, reason="order code")
        await websocket.close(code=4004, reason="Order not found")
        return

    try:
        await manager.connect_customer(websocket, order_id)
    except ConnectionError as e:
        audit_ws_connection("REJECTED", endpoint, order_id=order_id, reason=str(e))
        return

    audit_ws_connection("CONNECT", endpoint, order_id=order_id)
    await _keep_alive(websocket, endpoint, order_id=order_id)
