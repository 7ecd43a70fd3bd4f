"""
Centralized constants for the backend application.
Avoids magic strings for roles, statuses and transition tables.

Usage:
    from shared.config.constants import OrderStatus, ORDER_TRANSITIONS

    if target in ORDER_TRANSITIONS[order.status]:
        ...
"""

from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """Staff role constants carried in the JWT ``roles`` claim."""

    ADMIN: Final[str] = "ADMIN"
    CASHIER: Final[str] = "CASHIER"
    KITCHEN: Final[str] = "KITCHEN"

    ALL: Final[list[str]] = [ADMIN, CASHIER, KITCHEN]


POS_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.CASHIER})
KITCHEN_ACCESS_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.CASHIER, Roles.KITCHEN})
PAYMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.CASHIER})
REPORT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN})


# =============================================================================
# Order and payment enums
# =============================================================================


class OrderChannel:
    """Where an order was entered."""

    QR: Final[str] = "QR"
    POS: Final[str] = "POS"

    ALL: Final[list[str]] = [QR, POS]


class OrderStatus:
    """Fulfillment status of an order."""

    NEW: Final[str] = "NEW"
    ACCEPTED: Final[str] = "ACCEPTED"
    IN_PROGRESS: Final[str] = "IN_PROGRESS"
    READY: Final[str] = "READY"
    SERVED: Final[str] = "SERVED"
    CLOSED: Final[str] = "CLOSED"
    CANCELLED: Final[str] = "CANCELLED"

    ALL: Final[list[str]] = [NEW, ACCEPTED, IN_PROGRESS, READY, SERVED, CLOSED, CANCELLED]
    TERMINAL: Final[frozenset[str]] = frozenset({CLOSED, CANCELLED})
    # Leaving ACCEPTED requires a PAID payment
    REQUIRES_PAYMENT: Final[frozenset[str]] = frozenset({IN_PROGRESS, READY, SERVED, CLOSED})
    # Never shown on the kitchen board
    KITCHEN_HIDDEN: Final[frozenset[str]] = frozenset({SERVED, CLOSED, CANCELLED})


class PaymentStatus:
    """Payment status constants."""

    UNPAID: Final[str] = "UNPAID"
    PENDING: Final[str] = "PENDING"
    PAID: Final[str] = "PAID"
    REFUNDED: Final[str] = "REFUNDED"
    # Attempt superseded by another payment method
    REJECTED: Final[str] = "REJECTED"

    ALL: Final[list[str]] = [UNPAID, PENDING, PAID, REFUNDED, REJECTED]
    CONFIRMABLE: Final[list[str]] = [UNPAID, PENDING]


class PaymentMethod:
    """Payment method constants."""

    CASH: Final[str] = "CASH"
    TRANSFER: Final[str] = "TRANSFER"
    QR: Final[str] = "QR"

    ALL: Final[list[str]] = [CASH, TRANSFER, QR]


class RoundingRule:
    """Cash rounding applied to the grand total."""

    NONE: Final[str] = "NONE"
    NEAREST_100: Final[str] = "NEAREST_100"
    NEAREST_500: Final[str] = "NEAREST_500"
    NEAREST_1000: Final[str] = "NEAREST_1000"

    ALL: Final[list[str]] = [NONE, NEAREST_100, NEAREST_500, NEAREST_1000]
    STEP: Final[dict[str, int]] = {
        NONE: 1,
        NEAREST_100: 100,
        NEAREST_500: 500,
        NEAREST_1000: 1000,
    }


class OrderMode:
    """Which channels an outlet accepts orders from."""

    QR_ONLY: Final[str] = "QR_ONLY"
    POS_ONLY: Final[str] = "POS_ONLY"
    QR_AND_POS: Final[str] = "QR_AND_POS"

    ALL: Final[list[str]] = [QR_ONLY, POS_ONLY, QR_AND_POS]
    CHANNELS: Final[dict[str, frozenset[str]]] = {
        QR_ONLY: frozenset({OrderChannel.QR}),
        POS_ONLY: frozenset({OrderChannel.POS}),
        QR_AND_POS: frozenset({OrderChannel.QR, OrderChannel.POS}),
    }


class CustomerType:
    """Customer identity on an order."""

    GUEST: Final[str] = "GUEST"
    MEMBER: Final[str] = "MEMBER"


class AuditAction:
    """Audit log actions written by the order and payment services."""

    ORDER_CREATED: Final[str] = "ORDER_CREATED"
    ORDER_STATUS_CHANGED: Final[str] = "ORDER_STATUS_CHANGED"
    ORDER_DISCOUNT_APPLIED: Final[str] = "ORDER_DISCOUNT_APPLIED"
    ORDER_EXPIRED: Final[str] = "ORDER_EXPIRED"
    PAYMENT_CONFIRMED: Final[str] = "PAYMENT_CONFIRMED"
    PAYMENT_PROOF_SUBMITTED: Final[str] = "PAYMENT_PROOF_SUBMITTED"
    PAYMENT_REFUNDED: Final[str] = "PAYMENT_REFUNDED"
    PAYMENT_REPLACED: Final[str] = "PAYMENT_REPLACED"


# =============================================================================
# Status Transitions
# =============================================================================

# Fulfillment transitions (from -> allowed targets). Forward only, CANCELLED
# until the order is served.
ORDER_TRANSITIONS: Final[dict[str, list[str]]] = {
    OrderStatus.NEW: [OrderStatus.ACCEPTED, OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED],
    OrderStatus.ACCEPTED: [OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED],
    OrderStatus.IN_PROGRESS: [OrderStatus.READY, OrderStatus.CANCELLED],
    OrderStatus.READY: [OrderStatus.SERVED, OrderStatus.CANCELLED],
    OrderStatus.SERVED: [OrderStatus.CLOSED],
    OrderStatus.CLOSED: [],  # Terminal state
    OrderStatus.CANCELLED: [],  # Terminal state
}

# Payment transitions, independent of fulfillment
PAYMENT_TRANSITIONS: Final[dict[str, list[str]]] = {
    PaymentStatus.UNPAID: [PaymentStatus.PENDING, PaymentStatus.PAID, PaymentStatus.REJECTED],
    PaymentStatus.PENDING: [PaymentStatus.PAID, PaymentStatus.REJECTED],
    PaymentStatus.PAID: [PaymentStatus.REFUNDED],
    PaymentStatus.REFUNDED: [],  # Terminal state
    PaymentStatus.REJECTED: [],  # Terminal state
}

# Which staff roles may request each fulfillment target
ORDER_TRANSITION_ROLES: Final[dict[str, frozenset[str]]] = {
    OrderStatus.ACCEPTED: POS_ROLES,
    OrderStatus.IN_PROGRESS: KITCHEN_ACCESS_ROLES,
    OrderStatus.READY: KITCHEN_ACCESS_ROLES,
    OrderStatus.SERVED: KITCHEN_ACCESS_ROLES,
    OrderStatus.CLOSED: POS_ROLES,
    OrderStatus.CANCELLED: POS_ROLES,
}


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99
    MAX_ITEMS_PER_ORDER: Final[int] = 100

    MAX_AMOUNT: Final[int] = 1_000_000_000

    MAX_NAME_LENGTH: Final[int] = 200
    MAX_NOTE_LENGTH: Final[int] = 500
    MAX_PHONE_LENGTH: Final[int] = 32

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200


def is_valid_order_transition(current_status: str, new_status: str) -> bool:
    """Check whether a fulfillment transition exists in the table."""
    return new_status in ORDER_TRANSITIONS.get(current_status, [])


def is_valid_payment_transition(current_status: str, new_status: str) -> bool:
    """Check whether a payment transition exists in the table."""
    return new_status in PAYMENT_TRANSITIONS.get(current_status, [])


def get_allowed_order_transitions(
    current_status: str,
    roles: list[str],
    payment_status: str | None = None,
) -> list[str]:
    """
    Fulfillment targets a user with ``roles`` may request from ``current_status``.

    Returned on staff order reads so the POS/KDS can render action buttons.
    With ``payment_status`` given, kitchen targets are left out until it is PAID.
    """
    result = []
    for new_status in ORDER_TRANSITIONS.get(current_status, []):
        if (
            payment_status is not None
            and new_status in OrderStatus.REQUIRES_PAYMENT
            and payment_status != PaymentStatus.PAID
        ):
            continue
        allowed_roles = ORDER_TRANSITION_ROLES.get(new_status, POS_ROLES)
        if any(role in allowed_roles for role in roles):
            result.append(new_status)
    return result
