"""
Kitchen display (KDS) router.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from shared.config.constants import KITCHEN_ACCESS_ROLES, OrderStatus
from shared.config.logging import kitchen_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import (
    actor_from_context,
    current_user_context,
    require_outlet,
    require_roles,
)
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import KitchenBoardOutput, OrderOutput, UpdateOrderStatusRequest
from pos_api.services.domain import OrderService, load_kitchen_board
from pos_api.services.events import RealtimeNotifier, dispatch_events, get_notifier
from ._common import domain_errors, order_to_output, staff_outlet_ids


router = APIRouter(prefix="/api/kds", tags=["kitchen"])

# The kitchen only moves food along; cancelling and closing stay at the POS
KDS_TARGETS = frozenset({OrderStatus.IN_PROGRESS, OrderStatus.READY, OrderStatus.SERVED})


@router.get("/orders", response_model=KitchenBoardOutput)
def get_kitchen_board(
    outlet_id: int,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> KitchenBoardOutput:
    """
    Kitchen board for an outlet.

    Only PAID orders appear; SERVED, CLOSED and CANCELLED never do.
    Columns are ordered oldest first.
    """
    require_roles(ctx, KITCHEN_ACCESS_ROLES)
    require_outlet(ctx, outlet_id)

    board = load_kitchen_board(db, outlet_id)
    roles = ctx.get("roles", [])
    return KitchenBoardOutput(
        incoming=[order_to_output(o, roles) for o in board.incoming],
        cooking=[order_to_output(o, roles) for o in board.cooking],
        ready=[order_to_output(o, roles) for o in board.ready],
        poll_interval_seconds=settings.realtime_poll_interval_seconds,
    )


@router.patch("/orders/{order_id}/status", response_model=OrderOutput)
def update_kitchen_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> OrderOutput:
    """Start cooking, mark ready or mark served. Returns 409 on an illegal move."""
    require_roles(ctx, KITCHEN_ACCESS_ROLES)
    if body.status not in KDS_TARGETS:
        raise ValidationError(
            f"Kitchen cannot set status {body.status}",
            allowed=sorted(KDS_TARGETS),
        )

    with domain_errors():
        order, events = OrderService(db).change_status(
            order_id, body.status, actor_from_context(ctx), staff_outlet_ids(ctx)
        )

    background_tasks.add_task(dispatch_events, notifier, events)
    if events:
        logger.info("Kitchen status updated", order_id=order.id, status=order.status)
    return order_to_output(order, ctx.get("roles", []))
