"""
Audit Log Model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntId, utcnow


class AuditLog(Base):
    """
    Records order and payment changes: who did what, when, and the
    before/after values. Written in the same transaction as the change.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    outlet_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    # Who made the change (None for customers and system jobs)
    actor_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(16))

    # What was changed
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)

    old_values: Mapped[Optional[str]] = mapped_column(Text)  # JSON of previous state
    new_values: Mapped[Optional[str]] = mapped_column(Text)  # JSON of new state

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )
