"""
Menu Models: MenuItem, Addon.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Index, Integer, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .outlet import Outlet


class MenuItem(AuditMixin, Base):
    """
    A sellable item of an outlet's menu.

    ``variants`` is a list of ``{"name": str, "price_delta": int}``.
    ``allowed_addon_ids`` restricts which addons may be attached; None
    allows every active addon of the outlet.
    ``stock`` of None means stock is not tracked.
    """

    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("outlet.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    variants: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    allowed_addon_ids: Mapped[Optional[list[int]]] = mapped_column(JSON, nullable=True)

    outlet: Mapped["Outlet"] = relationship(back_populates="menu_items")

    __table_args__ = (
        CheckConstraint("price >= 0", name="chk_menu_item_price_non_negative"),
        Index("ix_menu_item_outlet_active", "outlet_id", "is_active"),
    )

    @property
    def sold_out(self) -> bool:
        return self.stock is not None and self.stock <= 0

    def find_variant(self, name: str) -> dict[str, Any] | None:
        for variant in self.variants or []:
            if variant.get("name") == name:
                return variant
        return None


class Addon(AuditMixin, Base):
    """An optional extra (extra cheese, extra shot) with its own price."""

    __tablename__ = "addon"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("outlet.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="chk_addon_price_non_negative"),
    )
