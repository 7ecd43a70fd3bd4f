"""
Domain Services.

Business logic for ordering, kept out of the routers:
- pricing: totals and cash rounding
- order_lifecycle: guarded order/payment transitions
- order_service: creation, status changes, queries
- payment_service: confirmation, method changes, proof, refunds
- kitchen_queue: kitchen display projection
- report_service: sales summary
"""

from .errors import (
    DomainError,
    DomainValidationError,
    StateConflictError,
    NotFound,
    EmptyOrder,
    InvalidOrderItem,
    InvalidDiscount,
    PaymentMethodNotEnabled,
    ChannelNotEnabled,
    IllegalStateTransition,
    InvalidOperation,
)
from .pricing import FiscalSettings, PriceLine, Totals, apply_rounding, compute_totals
from .order_lifecycle import transition_order, transition_payment
from .order_service import OrderService, PlacedOrder
from .payment_service import PaymentService, PaymentResult
from .kitchen_queue import KitchenBoard, kitchen_board, orders_for_kitchen, load_kitchen_board
from .report_service import ReportService, SalesSummary

__all__ = [
    "DomainError",
    "DomainValidationError",
    "StateConflictError",
    "NotFound",
    "EmptyOrder",
    "InvalidOrderItem",
    "InvalidDiscount",
    "PaymentMethodNotEnabled",
    "ChannelNotEnabled",
    "IllegalStateTransition",
    "InvalidOperation",
    "FiscalSettings",
    "PriceLine",
    "Totals",
    "apply_rounding",
    "compute_totals",
    "transition_order",
    "transition_payment",
    "OrderService",
    "PlacedOrder",
    "PaymentService",
    "PaymentResult",
    "KitchenBoard",
    "kitchen_board",
    "orders_for_kitchen",
    "load_kitchen_board",
    "ReportService",
    "SalesSummary",
]
