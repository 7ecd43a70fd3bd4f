"""
Order Models: Order, OrderItem.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from shared.config.constants import CustomerType, OrderStatus, PaymentStatus, RoundingRule
from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .outlet import DiningTable
    from .payment import Payment


class Order(AuditMixin, Base):
    """
    A customer order with two independent state axes.

    ``status`` tracks fulfillment (NEW ... CLOSED/CANCELLED) and
    ``payment_status`` mirrors the active payment. Status changes go
    through ``advance_to`` so the transition table and the payment gate
    are always applied.

    Totals and the fiscal settings they were computed with are stored on
    the row; only the discount recalculation path rewrites them.
    """

    __tablename__ = "pos_order"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("outlet.id"), nullable=False, index=True
    )
    company_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    table_id: Mapped[Optional[int]] = mapped_column(
        BigIntId, ForeignKey("dining_table.id"), index=True
    )
    order_code: Mapped[str] = mapped_column(String(16), nullable=False)
    channel: Mapped[str] = mapped_column(String(8), nullable=False)  # QR, POS

    # Customer (anonymous QR orders are GUEST with no name)
    customer_type: Mapped[str] = mapped_column(
        String(8), default=CustomerType.GUEST, nullable=False
    )
    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32))
    member_user_id: Mapped[Optional[int]] = mapped_column(BigInteger)

    # Money, integer minor-free units
    subtotal: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    tax: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    service: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Fiscal settings snapshot
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False)
    service_rate: Mapped[float] = mapped_column(Float, nullable=False)
    rounding: Mapped[str] = mapped_column(String(16), default=RoundingRule.NONE, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), default=OrderStatus.NEW, nullable=False, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(16), default=PaymentStatus.UNPAID, nullable=False, index=True
    )
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )
    payments: Mapped[list["Payment"]] = relationship(
        back_populates="order",
        order_by="Payment.id",
        lazy="selectin",
    )
    table: Mapped[Optional["DiningTable"]] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("outlet_id", "order_code", name="uq_order_outlet_code"),
        CheckConstraint("subtotal >= 0", name="chk_order_subtotal_non_negative"),
        CheckConstraint("discount >= 0", name="chk_order_discount_non_negative"),
        CheckConstraint("tax >= 0", name="chk_order_tax_non_negative"),
        CheckConstraint("service >= 0", name="chk_order_service_non_negative"),
        CheckConstraint("total >= 0", name="chk_order_total_non_negative"),
        # Kitchen board and POS list queries
        Index("ix_order_outlet_status", "outlet_id", "status"),
        Index("ix_order_outlet_created", "outlet_id", "created_at"),
    )

    @property
    def active_payment(self) -> Optional["Payment"]:
        """The latest payment; an order has at most one active payment."""
        return self.payments[-1] if self.payments else None

    def advance_to(self, target: str) -> bool:
        """
        Move fulfillment to ``target`` through the guarded transition.

        Returns False when already in ``target``.
        Raises IllegalStateTransition when the move is not allowed.
        """
        from pos_api.services.domain.order_lifecycle import transition_order

        return transition_order(self, target)

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, code='{self.order_code}', status='{self.status}', "
            f"payment_status='{self.payment_status}', total={self.total})>"
        )


SNAPSHOT_FIELDS = (
    "menu_item_id",
    "name_snapshot",
    "base_price_snapshot",
    "variant_name_snapshot",
    "variant_price_delta_snapshot",
    "addons_snapshot",
    "unit_price",
    "qty",
    "line_total",
)


class OrderItem(Base):
    """
    A line item frozen at order time.

    Names and prices are copies taken from the menu when the order was
    placed; later menu edits never reach them. Once the row is persisted
    the snapshot fields reject any assignment.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("pos_order.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Plain reference kept for reporting; never used to re-read prices
    menu_item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name_snapshot: Mapped[str] = mapped_column(Text, nullable=False)
    base_price_snapshot: Mapped[int] = mapped_column(BigInteger, nullable=False)
    variant_name_snapshot: Mapped[Optional[str]] = mapped_column(Text)
    variant_price_delta_snapshot: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    addons_snapshot: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    line_total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("qty > 0", name="chk_order_item_qty_positive"),
        CheckConstraint("base_price_snapshot >= 0", name="chk_order_item_price_non_negative"),
        CheckConstraint("unit_price >= 0", name="chk_order_item_unit_price_non_negative"),
    )

    @validates(*SNAPSHOT_FIELDS)
    def _freeze_snapshot(self, key: str, value: Any) -> Any:
        if self.id is not None:
            raise ValueError(f"OrderItem.{key} is a snapshot and cannot be changed")
        return value

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, name='{self.name_snapshot}', qty={self.qty})>"
