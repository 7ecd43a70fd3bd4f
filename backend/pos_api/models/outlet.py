"""
Outlet Models: Outlet, DiningTable.

Both are maintained by the back-office; the ordering core only reads them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, CheckConstraint, Float, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderMode, PaymentMethod, RoundingRule
from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .menu import MenuItem


class Outlet(AuditMixin, Base):
    """
    A physical restaurant location and its fiscal/payment settings.

    The settings are read at order creation and copied onto the order,
    so editing them later never changes existing totals.
    """

    __tablename__ = "outlet"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    company_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    # Fiscal settings (percentages)
    tax_rate: Mapped[float] = mapped_column(Float, default=10, nullable=False)
    service_rate: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    rounding: Mapped[str] = mapped_column(
        String(16), default=RoundingRule.NONE, nullable=False
    )  # NONE, NEAREST_100, NEAREST_500, NEAREST_1000

    order_mode: Mapped[str] = mapped_column(
        String(16), default=OrderMode.QR_AND_POS, nullable=False
    )  # QR_ONLY, POS_ONLY, QR_AND_POS
    enabled_payment_methods: Mapped[list[str]] = mapped_column(
        JSON, default=lambda: [PaymentMethod.CASH], nullable=False
    )

    # Manual transfer instructions shown to QR customers
    transfer_bank_name: Mapped[Optional[str]] = mapped_column(Text)
    transfer_account_name: Mapped[Optional[str]] = mapped_column(Text)
    transfer_account_number: Mapped[Optional[str]] = mapped_column(Text)
    transfer_note: Mapped[Optional[str]] = mapped_column(Text)

    # Static QR payment instructions
    qr_image_url: Mapped[Optional[str]] = mapped_column(Text)
    qr_note: Mapped[Optional[str]] = mapped_column(Text)

    tables: Mapped[list["DiningTable"]] = relationship(back_populates="outlet")
    menu_items: Mapped[list["MenuItem"]] = relationship(back_populates="outlet")

    __table_args__ = (
        CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="chk_outlet_tax_rate_range"),
        CheckConstraint(
            "service_rate >= 0 AND service_rate <= 100", name="chk_outlet_service_rate_range"
        ),
    )


class DiningTable(AuditMixin, Base):
    """A table with a printed QR code. ``qr_token`` is what the code encodes."""

    __tablename__ = "dining_table"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("outlet.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    qr_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)

    outlet: Mapped["Outlet"] = relationship(back_populates="tables")

    def __repr__(self) -> str:
        return f"<DiningTable(id={self.id}, outlet_id={self.outlet_id}, name='{self.name}')>"
