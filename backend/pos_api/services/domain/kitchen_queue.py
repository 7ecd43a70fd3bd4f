"""
Kitchen Queue Projection.

Read-side view for the kitchen display. Only paid orders that still need
cooking or handing over are shown:

    incoming  NEW, ACCEPTED
    cooking   IN_PROGRESS
    ready     READY

Oldest order first in every column.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import OrderStatus, PaymentStatus
from pos_api.models import Order

INCOMING_STATUSES = frozenset({OrderStatus.NEW, OrderStatus.ACCEPTED})
COOKING_STATUSES = frozenset({OrderStatus.IN_PROGRESS})
READY_STATUSES = frozenset({OrderStatus.READY})


@dataclass
class KitchenBoard:
    incoming: list[Order] = field(default_factory=list)
    cooking: list[Order] = field(default_factory=list)
    ready: list[Order] = field(default_factory=list)


def _age_key(order: Order) -> tuple:
    return (order.created_at, order.id)


def orders_for_kitchen(orders: Iterable[Order]) -> list[Order]:
    """Paid orders that are not served, closed or cancelled, oldest first."""
    visible = [
        o for o in orders
        if o.payment_status == PaymentStatus.PAID and o.status not in OrderStatus.KITCHEN_HIDDEN
    ]
    return sorted(visible, key=_age_key)


def kitchen_board(orders: Iterable[Order]) -> KitchenBoard:
    board = KitchenBoard()
    for order in orders_for_kitchen(orders):
        if order.status in INCOMING_STATUSES:
            board.incoming.append(order)
        elif order.status in COOKING_STATUSES:
            board.cooking.append(order)
        elif order.status in READY_STATUSES:
            board.ready.append(order)
    return board


def load_kitchen_candidates(db: Session, outlet_id: int) -> list[Order]:
    """
    Orders of an outlet that may be on the board.

    The SQL filter narrows the scan; ``orders_for_kitchen`` stays the rule.
    """
    return list(
        db.scalars(
            select(Order)
            .where(
                Order.outlet_id == outlet_id,
                Order.payment_status == PaymentStatus.PAID,
                Order.status.not_in(OrderStatus.KITCHEN_HIDDEN),
            )
            .order_by(Order.created_at, Order.id)
        ).all()
    )


def load_kitchen_board(db: Session, outlet_id: int) -> KitchenBoard:
    return kitchen_board(load_kitchen_candidates(db, outlet_id))
