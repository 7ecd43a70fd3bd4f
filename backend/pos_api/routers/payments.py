"""
Payments router.
Cashier confirmation, method changes and refunds.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from shared.config.constants import PAYMENT_ROLES
from shared.config.logging import payment_logger as logger
from shared.infrastructure.db import get_db
from shared.security.auth import actor_from_context, current_user_context, require_roles
from shared.utils.schemas import PaymentConfirmationResponse, RefundPaymentRequest, ReplacePaymentRequest
from pos_api.services.domain import PaymentResult, PaymentService
from pos_api.services.events import RealtimeNotifier, dispatch_events, get_notifier
from ._common import domain_errors, order_to_output, payment_to_output, staff_outlet_ids


router = APIRouter(prefix="/api/payments", tags=["payments"])


def _response(result: PaymentResult, ctx: dict[str, Any]) -> PaymentConfirmationResponse:
    return PaymentConfirmationResponse(
        payment=payment_to_output(result.payment),
        order=order_to_output(result.order, ctx.get("roles", [])),
        changed=result.changed,
    )


@router.post("/{payment_id}/confirm", response_model=PaymentConfirmationResponse)
def confirm_payment(
    payment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> PaymentConfirmationResponse:
    """
    Confirm a payment and release its order to the kitchen.

    Idempotent: confirming an already PAID payment returns 200 with
    ``changed=false`` and publishes nothing.
    """
    require_roles(ctx, PAYMENT_ROLES)

    with domain_errors():
        result = PaymentService(db).confirm_payment(
            payment_id, actor_from_context(ctx), staff_outlet_ids(ctx)
        )

    background_tasks.add_task(dispatch_events, notifier, result.events)
    if not result.changed:
        logger.info("Payment confirm repeated", payment_id=payment_id)
    return _response(result, ctx)


@router.post("/confirm-by-order/{order_id}", response_model=PaymentConfirmationResponse)
def confirm_payment_by_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> PaymentConfirmationResponse:
    """Confirm the latest payment of an order."""
    require_roles(ctx, PAYMENT_ROLES)

    with domain_errors():
        result = PaymentService(db).confirm_payment_for_order(
            order_id, actor_from_context(ctx), staff_outlet_ids(ctx)
        )

    background_tasks.add_task(dispatch_events, notifier, result.events)
    return _response(result, ctx)


@router.post("/{payment_id}/refund", response_model=PaymentConfirmationResponse)
def refund_payment(
    payment_id: int,
    body: RefundPaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> PaymentConfirmationResponse:
    """Refund the payment of a cancelled order."""
    require_roles(ctx, PAYMENT_ROLES)

    with domain_errors():
        result = PaymentService(db).refund_payment(
            payment_id, actor_from_context(ctx), body.reason, staff_outlet_ids(ctx)
        )

    background_tasks.add_task(dispatch_events, notifier, result.events)
    return _response(result, ctx)


@router.post("/replace-by-order/{order_id}", response_model=PaymentConfirmationResponse)
def replace_payment(
    order_id: int,
    body: ReplacePaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(current_user_context),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> PaymentConfirmationResponse:
    """
    Switch an unpaid order to another payment method.

    The open attempt is rejected and a new one is returned. Choosing the
    current method returns 200 with ``changed=false``.
    """
    require_roles(ctx, PAYMENT_ROLES)

    with domain_errors():
        result = PaymentService(db).replace_payment(
            order_id, body.payment_method, actor_from_context(ctx), staff_outlet_ids(ctx)
        )

    background_tasks.add_task(dispatch_events, notifier, result.events)
    return _response(result, ctx)
