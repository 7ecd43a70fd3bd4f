"""
Realtime Notifier.

Fans committed order/payment changes out to Redis so the WebSocket
gateway can push them to POS, kitchen displays and customer tracking
pages. Events are refetch hints, never the source of truth: a failed
publish is logged and the polling fallback covers the gap.

Services build ``Event`` objects; routers schedule ``dispatch_events``
as a background task so publishing always happens after the commit.

Usage:
    events = service.confirm_payment(payment_id, actor)
    background_tasks.add_task(dispatch_events, notifier, events)
"""

from __future__ import annotations

from typing import Any, Iterable

from shared.config.logging import get_logger
from shared.infrastructure.events import Event, get_redis_pool, route_event

logger = get_logger(__name__)


class RealtimeNotifier:
    """Publishes events to the outlet staff channel and the order customer channel."""

    async def publish(
        self,
        outlet_id: int,
        event_name: str,
        payload: dict[str, Any],
        order_id: int | None = None,
        payment_id: int | None = None,
        actor: dict[str, Any] | None = None,
    ) -> int:
        """Build and publish an event. Returns subscribers reached."""
        event = Event(
            type=event_name,
            outlet_id=outlet_id,
            order_id=order_id,
            payment_id=payment_id,
            entity=payload,
            actor=actor or {},
        )
        return await self.publish_event(event)

    async def publish_event(self, event: Event) -> int:
        redis_client = await get_redis_pool()
        sent = await route_event(redis_client, event)
        logger.debug(
            "Event published",
            event_type=event.type,
            outlet_id=event.outlet_id,
            order_id=event.order_id,
            subscribers=sent,
        )
        return sent


_notifier = RealtimeNotifier()


def get_notifier() -> RealtimeNotifier:
    """FastAPI dependency; tests override it with a recording notifier."""
    return _notifier


async def dispatch_events(notifier: RealtimeNotifier, events: Iterable[Event]) -> None:
    """
    Background task: publish events in order.

    Each failure is logged and the remaining events are still attempted;
    the request that produced them has already committed.
    """
    for event in events:
        try:
            await notifier.publish_event(event)
        except Exception as e:
            logger.error(
                "Failed to publish event",
                event_type=event.type,
                outlet_id=event.outlet_id,
                order_id=event.order_id,
                error=str(e),
            )
