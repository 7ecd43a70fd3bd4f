"""
Payment Model.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import PaymentStatus
from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .order import Order


class Payment(AuditMixin, Base):
    """
    The payment of an order.

    Status: UNPAID -> PENDING -> PAID -> REFUNDED (UNPAID -> PAID allowed).
    Confirmation claims the row with a conditional UPDATE so a payment
    is marked PAID exactly once.
    """

    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("pos_order.id"), nullable=False, index=True
    )
    outlet_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("outlet.id"), nullable=False, index=True
    )
    method: Mapped[str] = mapped_column(String(16), nullable=False)  # CASH, TRANSFER, QR
    status: Mapped[str] = mapped_column(
        String(16), default=PaymentStatus.UNPAID, nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    confirmed_by_id: Mapped[Optional[int]] = mapped_column(BigInteger)

    # Customer-submitted transfer/QR proof
    proof_url: Mapped[Optional[str]] = mapped_column(Text)
    proof_note: Mapped[Optional[str]] = mapped_column(Text)
    proof_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    refunded_by_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    refund_reason: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped["Order"] = relationship(back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_payment_amount_non_negative"),
        Index("ix_payment_outlet_status", "outlet_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, order_id={self.order_id}, status='{self.status}', amount={self.amount})>"
