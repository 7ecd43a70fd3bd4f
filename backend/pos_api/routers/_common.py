"""
Shared router helpers: domain error translation and response serializers.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from shared.config.constants import get_allowed_order_transitions
from shared.utils.exceptions import ConflictError, NotFoundError, ValidationError
from shared.utils.schemas import CustomerOutput, OrderItemOutput, OrderOutput, PaymentOutput
from pos_api.models import Order, Payment
from pos_api.services.domain.errors import (
    ChannelNotEnabled,
    DomainValidationError,
    EmptyOrder,
    IllegalStateTransition,
    InvalidDiscount,
    InvalidOrderItem,
    NotFound,
    PaymentMethodNotEnabled,
    StateConflictError,
)

# Customer-facing wording; the precise reason only goes to the log
PUBLIC_MESSAGES: dict[type, str] = {
    EmptyOrder: "Your order is empty",
    InvalidOrderItem: "Some items in your order are no longer available",
    InvalidDiscount: "Invalid discount",
    PaymentMethodNotEnabled: "This payment method is not available",
    ChannelNotEnabled: "Ordering is not available at this outlet right now",
}
PUBLIC_VALIDATION_MESSAGE = "Your order could not be placed"
PUBLIC_CONFLICT_MESSAGE = "This order can no longer be updated"


@contextmanager
def domain_errors(public: bool = False) -> Iterator[None]:
    """
    Translate domain errors raised inside the block into HTTP errors.

    NotFound -> 404, validation -> 400, state conflict -> 409.
    ``public`` swaps the specific reason for a generic message.
    """
    try:
        yield
    except NotFound as e:
        if public:
            raise NotFoundError(e.entity, error=str(e)) from e
        raise NotFoundError(e.entity, e.entity_id) from e
    except DomainValidationError as e:
        if public:
            message = PUBLIC_MESSAGES.get(type(e), PUBLIC_VALIDATION_MESSAGE)
            raise ValidationError(message, error=str(e)) from e
        raise ValidationError(str(e), error_type=type(e).__name__) from e
    except StateConflictError as e:
        if public:
            raise ConflictError(PUBLIC_CONFLICT_MESSAGE, error=str(e)) from e
        extra: dict[str, Any] = {"error_type": type(e).__name__}
        if isinstance(e, IllegalStateTransition):
            extra.update(from_status=e.from_status, to_status=e.to_status)
        raise ConflictError(str(e), **extra) from e


def staff_outlet_ids(ctx: dict[str, Any]) -> list[int]:
    return list(ctx.get("outlet_ids", []))


def order_to_output(order: Order, roles: list[str] | None = None) -> OrderOutput:
    """``roles`` fills ``allowed_transitions`` for staff callers."""
    return OrderOutput(
        id=order.id,
        order_code=order.order_code,
        outlet_id=order.outlet_id,
        table_id=order.table_id,
        table_name=order.table.name if order.table else None,
        channel=order.channel,
        customer=CustomerOutput(
            type=order.customer_type,
            name=order.customer_name,
            phone=order.customer_phone,
        ),
        items=[OrderItemOutput.model_validate(item) for item in order.items],
        subtotal=order.subtotal,
        discount=order.discount,
        tax=order.tax,
        service=order.service,
        total=order.total,
        tax_rate=order.tax_rate,
        service_rate=order.service_rate,
        rounding=order.rounding,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        note=order.note,
        created_at=order.created_at,
        updated_at=order.updated_at,
        allowed_transitions=(
            get_allowed_order_transitions(order.status, roles, order.payment_status) if roles else []
        ),
    )


def payment_to_output(payment: Payment) -> PaymentOutput:
    return PaymentOutput.model_validate(payment)
