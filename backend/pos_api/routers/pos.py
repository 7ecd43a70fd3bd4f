"""
POS (cashier) router.
Order entry, order list, status changes and discounts at the register.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from shared.config.constants import Limits, ORDER_TRANSITION_ROLES, POS_ROLES
from shared.config.logging import pos_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import (
    actor_from_context,
    current_user_context,
    require_outlet,
    require_roles,
)
from shared.utils.schemas import (
    ApplyDiscountRequest,
    CreatePosOrderRequest,
    OrderListResponse,
    OrderOutput,
    OrderStatusType,
    PaymentStatusType,
    PosOrderCreatedResponse,
    UpdateOrderStatusRequest,
)
from pos_api.services.domain import OrderService
from pos_api.services.events import RealtimeNotifier, dispatch_events, get_notifier
from ._common import domain_errors, order_to_output, payment_to_output, staff_outlet_ids


router = APIRouter(prefix="/api/pos", tags=["pos"])


@router.post("/orders", response_model=PosOrderCreatedResponse, status_code=201)
def create_pos_order(
    body: CreatePosOrderRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> PosOrderCreatedResponse:
    """
    Enter an order at the register.

    With ``mark_as_paid`` the payment starts PAID and the order goes
    straight to the kitchen board. Otherwise cash waits at the register
    (UNPAID) and transfer/QR waits for verification (PENDING).
    """
    require_roles(ctx, POS_ROLES)
    require_outlet(ctx, body.outlet_id)

    with domain_errors():
        placed = OrderService(db).create_pos_order(body, actor_from_context(ctx))

    background_tasks.add_task(dispatch_events, notifier, placed.events)
    return PosOrderCreatedResponse(
        order=order_to_output(placed.order, ctx.get("roles", [])),
        payment=payment_to_output(placed.payment),
    )


@router.get("/orders", response_model=OrderListResponse)
def list_orders(
    outlet_id: int,
    status: OrderStatusType | None = None,
    payment_status: PaymentStatusType | None = None,
    limit: int = Query(default=Limits.DEFAULT_PAGE_SIZE, ge=1, le=Limits.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> OrderListResponse:
    """Orders of an outlet, newest first. Clients poll this when realtime is down."""
    require_roles(ctx, POS_ROLES)
    require_outlet(ctx, outlet_id)

    orders, total = OrderService(db).list_orders(
        outlet_id,
        status=status,
        payment_status=payment_status,
        limit=limit,
        offset=offset,
    )
    return OrderListResponse(
        items=[order_to_output(o, ctx.get("roles", [])) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
        poll_interval_seconds=settings.realtime_poll_interval_seconds,
    )


@router.get("/orders/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
) -> OrderOutput:
    require_roles(ctx, POS_ROLES)
    with domain_errors():
        order = OrderService(db).get_order(order_id, staff_outlet_ids(ctx))
    return order_to_output(order, ctx.get("roles", []))


@router.patch("/orders/{order_id}/status", response_model=OrderOutput)
def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> OrderOutput:
    """
    Change an order's fulfillment status.

    Returns 409 when the transition is not allowed, including moving an
    unpaid order into the kitchen. Requesting the current status is a
    no-op.
    """
    require_roles(ctx, POS_ROLES)
    require_roles(ctx, ORDER_TRANSITION_ROLES.get(body.status, POS_ROLES))

    with domain_errors():
        order, events = OrderService(db).change_status(
            order_id, body.status, actor_from_context(ctx), staff_outlet_ids(ctx)
        )

    background_tasks.add_task(dispatch_events, notifier, events)
    return order_to_output(order, ctx.get("roles", []))


@router.post("/orders/{order_id}/discount", response_model=OrderOutput)
def apply_discount(
    order_id: int,
    body: ApplyDiscountRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> OrderOutput:
    """Recalculate an unpaid order with a new discount."""
    require_roles(ctx, POS_ROLES)

    with domain_errors():
        order, events = OrderService(db).apply_discount(
            order_id, body.discount, actor_from_context(ctx), staff_outlet_ids(ctx)
        )

    background_tasks.add_task(dispatch_events, notifier, events)
    logger.info("Discount applied", order_id=order.id, discount=body.discount)
    return order_to_output(order, ctx.get("roles", []))
