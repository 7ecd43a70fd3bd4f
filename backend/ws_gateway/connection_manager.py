"""
WebSocket connection manager.

Tracks active connections by outlet (POS and kitchen screens) and by
order (customer tracking pages), with heartbeat bookkeeping so silent
clients get cleaned up.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from shared.config.logging import get_logger
from shared.config.settings import settings

logger = get_logger(__name__)


def _is_ws_connected(ws: WebSocket) -> bool:
    """True if the connection can still send and receive."""
    return ws.client_state == WebSocketState.CONNECTED and ws.application_state == WebSocketState.CONNECTED


class ConnectionManager:
    """
    Registry of live WebSocket connections.

    Every connection belongs to exactly one scope: an outlet (staff) or an
    order (customer). Dict mutations happen under an asyncio.Lock.
    """

    def __init__(
        self,
        heartbeat_timeout: float | None = None,
        max_connections_per_outlet: int | None = None,
    ):
        self.heartbeat_timeout = heartbeat_timeout or settings.ws_heartbeat_timeout
        self.max_connections_per_outlet = (
            max_connections_per_outlet or settings.ws_max_connections_per_outlet
        )
        self._shutdown = False
        self.by_outlet: dict[int, set[WebSocket]] = {}
        self.by_order: dict[int, set[WebSocket]] = {}
        self._ws_to_outlet: dict[WebSocket, int] = {}
        self._ws_to_order: dict[WebSocket, int] = {}
        self._ws_to_user: dict[WebSocket, int] = {}
        self._last_heartbeat: dict[WebSocket, float] = {}
        self._lock = asyncio.Lock()

    async def connect_staff(
        self,
        websocket: WebSocket,
        outlet_id: int,
        user_id: int,
        timeout: float = 5.0,
    ) -> None:
        """
        Accept a staff connection and register it under ``outlet_id``.

        Raises ConnectionError during shutdown, on accept timeout, or when
        the outlet already has the maximum number of connections.
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")

        if len(self.by_outlet.get(outlet_id, ())) >= self.max_connections_per_outlet:
            await websocket.close(code=1008, reason="Too many connections")
            raise ConnectionError(
                f"Outlet {outlet_id} exceeded max connections ({self.max_connections_per_outlet})"
            )

        async with self._lock:
            self._last_heartbeat[websocket] = time.time()
            self.by_outlet.setdefault(outlet_id, set()).add(websocket)
            self._ws_to_outlet[websocket] = outlet_id
            self._ws_to_user[websocket] = user_id

    async def connect_customer(self, websocket: WebSocket, order_id: int, timeout: float = 5.0) -> None:
        """Accept a customer tracking connection for one order."""
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        try:
            await asyncio.wait_for(websocket.accept(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionError("WebSocket accept timed out")

        async with self._lock:
            self._last_heartbeat[websocket] = time.time()
            self.by_order.setdefault(order_id, set()).add(websocket)
            self._ws_to_order[websocket] = order_id

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a connection from every index. Safe to call twice."""
        async with self._lock:
            self._last_heartbeat.pop(websocket, None)
            self._ws_to_user.pop(websocket, None)

            outlet_id = self._ws_to_outlet.pop(websocket, None)
            if outlet_id is not None and outlet_id in self.by_outlet:
                self.by_outlet[outlet_id].discard(websocket)
                if not self.by_outlet[outlet_id]:
                    del self.by_outlet[outlet_id]

            order_id = self._ws_to_order.pop(websocket, None)
            if order_id is not None and order_id in self.by_order:
                self.by_order[order_id].discard(websocket)
                if not self.by_order[order_id]:
                    del self.by_order[order_id]

    async def _send_all(self, connections: list[WebSocket], payload: dict[str, Any], scope: str) -> int:
        sent = 0
        for ws in connections:
            if not _is_ws_connected(ws):
                continue
            try:
                await ws.send_json(payload)
                sent += 1
            except Exception as e:
                logger.warning("Failed to send message", scope=scope, error=str(e))
        return sent

    async def send_to_outlet(self, outlet_id: int, payload: dict[str, Any]) -> int:
        """Send to every staff screen of an outlet. Returns connections reached."""
        connections = list(self.by_outlet.get(outlet_id, ()))
        return await self._send_all(connections, payload, f"outlet:{outlet_id}")

    async def send_to_order(self, order_id: int, payload: dict[str, Any]) -> int:
        """Send to the customer pages tracking an order."""
        connections = list(self.by_order.get(order_id, ()))
        return await self._send_all(connections, payload, f"order:{order_id}")

    @property
    def total_connections(self) -> int:
        return len(self._last_heartbeat)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": self.total_connections,
            "staff_connections": len(self._ws_to_outlet),
            "customer_connections": len(self._ws_to_order),
            "outlets_with_connections": len(self.by_outlet),
            "orders_with_connections": len(self.by_order),
        }

    # =========================================================================
    # Heartbeat tracking
    # =========================================================================

    def record_heartbeat(self, websocket: WebSocket) -> None:
        self._last_heartbeat[websocket] = time.time()

    def get_stale_connections(self, now: float | None = None) -> list[WebSocket]:
        """Connections silent for longer than the heartbeat timeout."""
        now = now if now is not None else time.time()
        return [
            ws for ws, last_time in list(self._last_heartbeat.items())
            if now - last_time > self.heartbeat_timeout
        ]

    async def cleanup_stale_connections(self) -> int:
        """Close and remove stale connections. Returns how many were removed."""
        stale = self.get_stale_connections()
        for ws in stale:
            try:
                await ws.close(code=1001, reason="Heartbeat timeout")
            except Exception as e:
                logger.warning("Failed to close stale connection", error=str(e))
            await self.disconnect(ws)
        return len(stale)

    async def shutdown(self) -> int:
        """Reject new connections and close the existing ones."""
        self._shutdown = True
        async with self._lock:
            all_connections = list(self._last_heartbeat)

        closed = 0
        for ws in all_connections:
            try:
                await ws.close(code=1001, reason="Server shutdown")
                closed += 1
            except Exception as e:
                logger.warning("Failed to close connection during shutdown", error=str(e))
            await self.disconnect(ws)

        logger.info("WebSocket shutdown complete", closed=closed)
        return closed

    def is_shutting_down(self) -> bool:
        return self._shutdown
