"""
Event builders for order and payment changes.

The ``entity`` summary is small on purpose: statuses, code and total are
enough for a screen to decide whether to refetch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from shared.infrastructure.events import (
    Event,
    ORDER_CREATED,
    ORDER_STATUS_UPDATED,
    PAYMENT_UPDATED,
)

if TYPE_CHECKING:
    from pos_api.models import Order, Payment


def _order_summary(order: "Order") -> dict[str, Any]:
    return {
        "order_code": order.order_code,
        "channel": order.channel,
        "table_id": order.table_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "total": order.total,
    }


def order_created_event(order: "Order", payment: "Payment", actor: dict[str, Any] | None = None) -> Event:
    return Event(
        type=ORDER_CREATED,
        outlet_id=order.outlet_id,
        order_id=order.id,
        payment_id=payment.id,
        entity=_order_summary(order),
        actor=actor or {},
    )


def order_status_event(
    order: "Order",
    previous_status: str,
    actor: dict[str, Any] | None = None,
) -> Event:
    entity = _order_summary(order)
    entity["previous_status"] = previous_status
    return Event(
        type=ORDER_STATUS_UPDATED,
        outlet_id=order.outlet_id,
        order_id=order.id,
        entity=entity,
        actor=actor or {},
    )


def payment_updated_event(
    payment: "Payment",
    order: "Order",
    previous_status: str,
    actor: dict[str, Any] | None = None,
) -> Event:
    entity = _order_summary(order)
    entity.update(
        {
            "payment_method": payment.method,
            "amount": payment.amount,
            "previous_payment_status": previous_status,
        }
    )
    return Event(
        type=PAYMENT_UPDATED,
        outlet_id=order.outlet_id,
        order_id=order.id,
        payment_id=payment.id,
        entity=entity,
        actor=actor or {},
    )
