"""
Sales summary report.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shared.config.constants import PaymentStatus
from pos_api.models import Order


@dataclass
class SalesSummary:
    outlet_id: int
    date_from: datetime
    date_to: datetime
    total_orders: int
    paid_orders: int
    gross_sales: int
    total_discount: int
    total_tax: int
    total_service: int
    total_revenue: int
    average_order_value: int
    orders_by_status: dict[str, int]
    orders_by_payment_status: dict[str, int]
    orders_by_payment_method: dict[str, int]


class ReportService:
    """Read-only aggregate queries over orders."""

    def __init__(self, db: Session):
        self._db = db

    def _count_by(self, column, conditions) -> dict[str, int]:
        rows = self._db.execute(
            select(column, func.count(Order.id)).where(*conditions).group_by(column)
        ).all()
        return {key: count for key, count in rows}

    def sales_summary(self, outlet_id: int, date_from: datetime, date_to: datetime) -> SalesSummary:
        """
        Summarize orders created in ``[date_from, date_to)``.

        Counts cover every order; money sums cover PAID orders only, so
        refunded and unconfirmed orders never show up as revenue.
        """
        in_range = [
            Order.outlet_id == outlet_id,
            Order.created_at >= date_from,
            Order.created_at < date_to,
        ]
        paid = in_range + [Order.payment_status == PaymentStatus.PAID]

        total_orders = self._db.scalar(select(func.count(Order.id)).where(*in_range)) or 0
        row = self._db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.subtotal), 0),
                func.coalesce(func.sum(Order.discount), 0),
                func.coalesce(func.sum(Order.tax), 0),
                func.coalesce(func.sum(Order.service), 0),
                func.coalesce(func.sum(Order.total), 0),
            ).where(*paid)
        ).one()
        paid_orders, gross, discount, tax, service, revenue = (int(v) for v in row)

        return SalesSummary(
            outlet_id=outlet_id,
            date_from=date_from,
            date_to=date_to,
            total_orders=total_orders,
            paid_orders=paid_orders,
            gross_sales=gross,
            total_discount=discount,
            total_tax=tax,
            total_service=service,
            total_revenue=revenue,
            average_order_value=revenue // paid_orders if paid_orders else 0,
            orders_by_status=self._count_by(Order.status, in_range),
            orders_by_payment_status=self._count_by(Order.payment_status, in_range),
            orders_by_payment_method=self._count_by(Order.payment_method, in_range),
        )
