"""
SQLAlchemy ORM Models Package.

- base: Base class and AuditMixin
- outlet: Outlet, DiningTable
- menu: MenuItem, Addon
- order: Order, OrderItem
- payment: Payment
- audit: AuditLog
"""

from .base import Base, AuditMixin, BigIntId

from .outlet import Outlet, DiningTable

from .menu import MenuItem, Addon

from .order import Order, OrderItem

from .payment import Payment

from .audit import AuditLog


__all__ = [
    "Base",
    "AuditMixin",
    "BigIntId",
    "Outlet",
    "DiningTable",
    "MenuItem",
    "Addon",
    "Order",
    "OrderItem",
    "Payment",
    "AuditLog",
]
