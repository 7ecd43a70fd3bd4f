"""
Order and payment state machines.

Every status change in the service layer goes through one of the two
guarded functions below. Both share the same contract:

- target equals the current state: no-op, returns False
- target not reachable from the current state: IllegalStateTransition
- otherwise the state is updated and True is returned

Fulfillment has an extra gate: IN_PROGRESS and later require a PAID
payment, so the kitchen never starts on an unpaid order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shared.config.constants import (
    OrderStatus,
    PaymentStatus,
    is_valid_order_transition,
    is_valid_payment_transition,
)
from .errors import IllegalStateTransition

if TYPE_CHECKING:
    from pos_api.models import Order, Payment


PAYMENT_REQUIRED_REASON = "payment must be PAID before the kitchen can start"


def check_order_transition(current: str, target: str, payment_status: str) -> None:
    """Raise IllegalStateTransition unless ``current -> target`` is allowed."""
    if not is_valid_order_transition(current, target):
        raise IllegalStateTransition(current, target)
    if target in OrderStatus.REQUIRES_PAYMENT and payment_status != PaymentStatus.PAID:
        raise IllegalStateTransition(current, target, PAYMENT_REQUIRED_REASON)


def transition_order(order: "Order", target: str) -> bool:
    """Apply a fulfillment transition to ``order``."""
    if order.status == target:
        return False
    check_order_transition(order.status, target, order.payment_status)
    order.status = target
    return True


def transition_payment(payment: "Payment", target: str, order: "Order | None" = None) -> bool:
    """
    Apply a payment transition and mirror it onto the order.

    ``order`` defaults to ``payment.order``.
    """
    if payment.status == target:
        return False
    if not is_valid_payment_transition(payment.status, target):
        raise IllegalStateTransition(payment.status, target)
    payment.status = target
    order = order if order is not None else payment.order
    if order is not None:
        order.payment_status = target
    return True
