"""
Domain errors raised by the ordering services.

Services raise these plain exceptions; routers translate them into the
HTTP exception hierarchy in ``shared.utils.exceptions``.

Two families:
- ``DomainValidationError``: the request itself is wrong (HTTP 400/404)
- ``StateConflictError``: the request is fine but the entity's current
  state forbids it (HTTP 409)
"""


class DomainError(Exception):
    """Base class for ordering domain errors."""

    pass


# =============================================================================
# Validation
# =============================================================================


class DomainValidationError(DomainError):
    pass


class NotFound(DomainValidationError):
    """Entity missing, inactive, or outside the caller's outlet."""

    def __init__(self, entity: str, entity_id: int | str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")


class EmptyOrder(DomainValidationError):
    def __init__(self) -> None:
        super().__init__("Order must contain at least one item")


class InvalidOrderItem(DomainValidationError):
    """A line item cannot be ordered as requested."""

    def __init__(self, reason: str, menu_item_id: int | None = None):
        self.reason = reason
        self.menu_item_id = menu_item_id
        super().__init__(reason)


class InvalidDiscount(DomainValidationError):
    def __init__(self, discount: int, subtotal: int):
        self.discount = discount
        self.subtotal = subtotal
        super().__init__(f"Discount {discount} must be between 0 and the subtotal {subtotal}")


class PaymentMethodNotEnabled(DomainValidationError):
    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Payment method {method} is not enabled for this outlet")


class ChannelNotEnabled(DomainValidationError):
    def __init__(self, channel: str, order_mode: str):
        self.channel = channel
        self.order_mode = order_mode
        super().__init__(f"{channel} ordering is not enabled for this outlet ({order_mode})")


# =============================================================================
# State conflicts
# =============================================================================


class StateConflictError(DomainError):
    pass


class IllegalStateTransition(StateConflictError):
    """Requested status change is not in the transition table or is gated."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = f"Cannot transition from {from_status} to {to_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidOperation(StateConflictError):
    """Operation not allowed in the entity's current state."""

    pass
