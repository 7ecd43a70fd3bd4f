"""
Order Domain Service.

Creates orders from both channels (customer QR, cashier POS), applies
fulfillment status changes and serves the order queries.

Creation validates the draft against the live menu, copies names and
prices into snapshot columns, prices the order with the outlet's
current fiscal settings, and commits Order + Payment + audit entry in
one transaction. Every write method returns the events to publish after
the commit.
"""

from __future__ import annotations

import secrets
import string
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Collection

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shared.config.constants import (
    AuditAction,
    CustomerType,
    OrderChannel,
    OrderMode,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Limits,
)
from shared.config.logging import get_logger, mask_phone
from shared.config.settings import Settings, settings
from shared.infrastructure.db import safe_commit
from shared.infrastructure.events import Event
from shared.utils.schemas import (
    CreatePosOrderRequest,
    CreateQrOrderRequest,
    CustomerInput,
    OrderItemInput,
)
from pos_api.models import Addon, DiningTable, MenuItem, Order, OrderItem, Outlet, Payment
from pos_api.services.audit import log_change
from pos_api.services.events.builders import (
    order_created_event,
    order_status_event,
    payment_updated_event,
)
from .errors import (
    ChannelNotEnabled,
    EmptyOrder,
    InvalidOperation,
    InvalidOrderItem,
    NotFound,
    PaymentMethodNotEnabled,
)
from .pricing import FiscalSettings, PriceLine, Totals, compute_totals
from .order_lifecycle import transition_order

logger = get_logger(__name__)

ORDER_CODE_ALPHABET = string.digits + string.ascii_uppercase


def generate_order_code(length: int = 6) -> str:
    """Random code from [0-9A-Z]; customers read it aloud at the counter."""
    return "".join(secrets.choice(ORDER_CODE_ALPHABET) for _ in range(length))


def initial_payment_status(channel: str, method: str, mark_as_paid: bool = False) -> str:
    """
    Payment status an order starts with.

    QR orders always wait for staff verification. At the POS the cashier
    may take the money up front; otherwise cash is collected later at the
    register and transfer/QR payments wait for verification.
    """
    if channel == OrderChannel.QR:
        return PaymentStatus.PENDING
    if mark_as_paid:
        return PaymentStatus.PAID
    if method == PaymentMethod.CASH:
        return PaymentStatus.UNPAID
    return PaymentStatus.PENDING


@dataclass
class PlacedOrder:
    """Result of order creation."""

    order: Order
    payment: Payment
    events: list[Event] = field(default_factory=list)


@dataclass
class _DraftLine:
    menu_item: MenuItem
    price_line: PriceLine
    snapshot: dict[str, Any]


class OrderService:
    """
    Domain service for order creation, status changes and queries.

    ``config`` defaults to the process settings; tests pass their own to
    flip pricing and stock policies.
    """

    def __init__(self, db: Session, config: Settings | None = None):
        self._db = db
        self._config = config or settings

    # =========================================================================
    # Lookups
    # =========================================================================

    def resolve_qr_token(self, qr_token: str) -> tuple[Outlet, DiningTable]:
        """Find the active table and outlet a printed QR code points to."""
        table = self._db.scalar(
            select(DiningTable).where(
                DiningTable.qr_token == qr_token,
                DiningTable.is_active.is_(True),
            )
        )
        if table is None:
            raise NotFound("Table")
        outlet = self._db.get(Outlet, table.outlet_id)
        if outlet is None or not outlet.is_active:
            raise NotFound("Outlet", table.outlet_id)
        return outlet, table

    def get_outlet(self, outlet_id: int) -> Outlet:
        outlet = self._db.get(Outlet, outlet_id)
        if outlet is None or not outlet.is_active:
            raise NotFound("Outlet", outlet_id)
        return outlet

    def list_menu(self, outlet_id: int) -> tuple[list[MenuItem], list[Addon]]:
        """Active menu items and addons of an outlet, for the QR menu."""
        self.get_outlet(outlet_id)
        items = self._db.scalars(
            select(MenuItem)
            .where(MenuItem.outlet_id == outlet_id, MenuItem.is_active.is_(True))
            .order_by(MenuItem.category, MenuItem.name, MenuItem.id)
        ).all()
        addons = self._db.scalars(
            select(Addon)
            .where(Addon.outlet_id == outlet_id, Addon.is_active.is_(True))
            .order_by(Addon.id)
        ).all()
        return list(items), list(addons)

    def _load_order(
        self,
        order_id: int,
        outlet_ids: Collection[int] | None = None,
        lock: bool = False,
    ) -> Order:
        stmt = select(Order).where(Order.id == order_id)
        if lock:
            stmt = stmt.with_for_update()
        order = self._db.scalar(stmt)
        # Orders of other outlets look missing
        if order is None or (outlet_ids is not None and order.outlet_id not in outlet_ids):
            raise NotFound("Order", order_id)
        return order

    def get_order(self, order_id: int, outlet_ids: Collection[int] | None = None) -> Order:
        return self._load_order(order_id, outlet_ids)

    def get_public_order(self, order_id: int, code: str) -> Order:
        """Customer tracking lookup. The order code acts as the secret."""
        order = self._db.get(Order, order_id)
        # Bytes, so non-ASCII input is a mismatch rather than a TypeError
        supplied = code.strip().upper().encode()
        if order is None or not secrets.compare_digest(order.order_code.encode(), supplied):
            raise NotFound("Order", order_id)
        return order

    def get_by_code(self, outlet_id: int, code: str) -> Order:
        order = self._db.scalar(
            select(Order).where(
                Order.outlet_id == outlet_id,
                Order.order_code == code.strip().upper(),
            )
        )
        if order is None:
            raise NotFound("Order", code)
        return order

    def list_orders(
        self,
        outlet_id: int,
        status: str | None = None,
        payment_status: str | None = None,
        limit: int = Limits.DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """Orders of an outlet, newest first, with the unpaginated count."""
        conditions = [Order.outlet_id == outlet_id]
        if status:
            conditions.append(Order.status == status)
        if payment_status:
            conditions.append(Order.payment_status == payment_status)

        total = self._db.scalar(select(func.count(Order.id)).where(*conditions)) or 0
        orders = self._db.scalars(
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(min(limit, Limits.MAX_PAGE_SIZE))
            .offset(offset)
        ).all()
        return list(orders), total

    # =========================================================================
    # Creation
    # =========================================================================

    def create_qr_order(self, request: CreateQrOrderRequest) -> PlacedOrder:
        """Place an order from a table QR code. Payment starts PENDING."""
        outlet, table = self.resolve_qr_token(request.qr_token)
        if request.outlet_id is not None and request.outlet_id != outlet.id:
            raise NotFound("Outlet", request.outlet_id)
        if request.table_id is not None and request.table_id != table.id:
            raise NotFound("Table", request.table_id)

        customer = request.customer
        if customer is not None:
            # Membership is attached by staff only; QR callers are unauthenticated guests
            customer = customer.model_copy(update={"type": CustomerType.GUEST, "member_user_id": None})

        return self._place_order(
            outlet=outlet,
            table=table,
            channel=OrderChannel.QR,
            items=request.items,
            customer=customer,
            method=request.payment_method,
            payment_status=initial_payment_status(OrderChannel.QR, request.payment_method),
            discount=0,
            note=request.note,
            actor=None,
        )

    def create_pos_order(self, request: CreatePosOrderRequest, actor: dict[str, Any]) -> PlacedOrder:
        """Place an order at the register on behalf of ``actor``."""
        outlet = self.get_outlet(request.outlet_id)
        table = None
        if request.table_id is not None:
            table = self._db.get(DiningTable, request.table_id)
            if table is None or not table.is_active or table.outlet_id != outlet.id:
                raise NotFound("Table", request.table_id)

        return self._place_order(
            outlet=outlet,
            table=table,
            channel=OrderChannel.POS,
            items=request.items,
            customer=request.customer,
            method=request.payment_method,
            payment_status=initial_payment_status(
                OrderChannel.POS, request.payment_method, request.mark_as_paid
            ),
            discount=request.discount,
            note=request.note,
            actor=actor,
        )

    def _place_order(
        self,
        *,
        outlet: Outlet,
        table: DiningTable | None,
        channel: str,
        items: list[OrderItemInput],
        customer: CustomerInput | None,
        method: str,
        payment_status: str,
        discount: int,
        note: str | None,
        actor: dict[str, Any] | None,
    ) -> PlacedOrder:
        if not items:
            raise EmptyOrder()

        allowed_channels = OrderMode.CHANNELS.get(outlet.order_mode, frozenset())
        if channel not in allowed_channels:
            raise ChannelNotEnabled(channel, outlet.order_mode)

        if method not in (outlet.enabled_payment_methods or []):
            raise PaymentMethodNotEnabled(method)

        draft = self._build_lines(outlet.id, items)
        fiscal = FiscalSettings(
            tax_rate=outlet.tax_rate,
            service_rate=outlet.service_rate,
            rounding=outlet.rounding,
        )
        totals = compute_totals(
            [line.price_line for line in draft],
            fiscal,
            discount=discount,
            tax_on_discounted_subtotal=self._config.tax_on_discounted_subtotal,
        )

        if self._config.decrement_stock_on_order:
            self._decrement_stock(draft)

        actor_id = actor.get("user_id") if actor else None
        customer = customer or CustomerInput()

        order = Order(
            outlet_id=outlet.id,
            company_id=outlet.company_id,
            table_id=table.id if table else None,
            order_code=self._generate_unique_code(outlet.id),
            channel=channel,
            customer_type=customer.type if customer.name or customer.member_user_id else CustomerType.GUEST,
            customer_name=customer.name,
            customer_phone=customer.phone,
            member_user_id=customer.member_user_id,
            tax_rate=fiscal.tax_rate,
            service_rate=fiscal.service_rate,
            rounding=fiscal.rounding,
            status=OrderStatus.NEW,
            payment_status=payment_status,
            payment_method=method,
            note=note,
            created_by_id=actor_id,
        )
        self._apply_totals(order, totals)
        order.items = [OrderItem(**line.snapshot) for line in draft]

        payment = Payment(
            order=order,
            outlet_id=outlet.id,
            method=method,
            status=payment_status,
            amount=totals.total,
            created_by_id=actor_id,
        )
        if payment_status == PaymentStatus.PAID:
            payment.confirmed_at = datetime.now(timezone.utc)
            payment.confirmed_by_id = actor_id

        self._db.add(order)
        self._db.flush()

        log_change(
            self._db,
            outlet_id=outlet.id,
            entity_type="order",
            entity_id=order.id,
            action=AuditAction.ORDER_CREATED,
            actor=actor,
            new_values={
                "order_code": order.order_code,
                "channel": channel,
                "total": order.total,
                "status": order.status,
                "payment_status": payment_status,
            },
        )
        events = [order_created_event(order, payment, actor)]
        safe_commit(self._db)

        logger.info(
            "Order created",
            order_id=order.id,
            outlet_id=outlet.id,
            channel=channel,
            total=totals.total,
            payment_status=payment_status,
            items=len(draft),
            customer_phone=mask_phone(order.customer_phone),
        )
        return PlacedOrder(order=order, payment=payment, events=events)

    def _build_lines(self, outlet_id: int, items: list[OrderItemInput]) -> list[_DraftLine]:
        """Validate every requested line against the live menu and snapshot it."""
        menu_ids = {item.menu_item_id for item in items}
        stmt = select(MenuItem).where(MenuItem.id.in_(menu_ids), MenuItem.outlet_id == outlet_id)
        if self._config.decrement_stock_on_order:
            stmt = stmt.with_for_update()
        menu_items = {m.id: m for m in self._db.scalars(stmt).all()}

        addon_ids = {addon_id for item in items for addon_id in item.addon_ids}
        addons: dict[int, Addon] = {}
        if addon_ids:
            addons = {
                a.id: a
                for a in self._db.scalars(
                    select(Addon).where(
                        Addon.id.in_(addon_ids),
                        Addon.outlet_id == outlet_id,
                        Addon.is_active.is_(True),
                    )
                ).all()
            }

        return [self._build_line(item, menu_items, addons) for item in items]

    def _build_line(
        self,
        item: OrderItemInput,
        menu_items: dict[int, MenuItem],
        addons: dict[int, Addon],
    ) -> _DraftLine:
        menu_item = menu_items.get(item.menu_item_id)
        if menu_item is None or not menu_item.is_active:
            raise InvalidOrderItem(f"Menu item {item.menu_item_id} not found", item.menu_item_id)
        if not menu_item.is_available:
            raise InvalidOrderItem(f"{menu_item.name} is not available", menu_item.id)
        if menu_item.sold_out:
            raise InvalidOrderItem(f"{menu_item.name} is sold out", menu_item.id)
        if item.qty <= 0:
            raise InvalidOrderItem(f"Quantity must be positive, got {item.qty}", menu_item.id)

        variant_name = None
        variant_delta = 0
        if item.variant_name:
            variant = menu_item.find_variant(item.variant_name)
            if variant is None:
                raise InvalidOrderItem(
                    f"Unknown variant '{item.variant_name}' for {menu_item.name}", menu_item.id
                )
            variant_name = variant["name"]
            variant_delta = int(variant.get("price_delta", 0))

        addon_snapshots = []
        for addon_id in item.addon_ids:
            addon = addons.get(addon_id)
            if addon is None:
                raise InvalidOrderItem(f"Addon {addon_id} not found", menu_item.id)
            if menu_item.allowed_addon_ids is not None and addon_id not in menu_item.allowed_addon_ids:
                raise InvalidOrderItem(
                    f"Addon {addon.name} is not offered for {menu_item.name}", menu_item.id
                )
            addon_snapshots.append({"addon_id": addon.id, "name": addon.name, "price": addon.price})

        price_line = PriceLine(
            base_price=menu_item.price,
            qty=item.qty,
            variant_price_delta=variant_delta,
            addon_prices=tuple(a["price"] for a in addon_snapshots),
        )
        snapshot = {
            "menu_item_id": menu_item.id,
            "name_snapshot": menu_item.name,
            "base_price_snapshot": menu_item.price,
            "variant_name_snapshot": variant_name,
            "variant_price_delta_snapshot": variant_delta,
            "addons_snapshot": addon_snapshots,
            "unit_price": price_line.unit_price,
            "qty": item.qty,
            "line_total": price_line.line_total,
            "note": item.note,
        }
        return _DraftLine(menu_item=menu_item, price_line=price_line, snapshot=snapshot)

    def _decrement_stock(self, draft: list[_DraftLine]) -> None:
        """Take tracked stock for the whole order; rows were locked in _build_lines."""
        requested = Counter()
        by_id: dict[int, MenuItem] = {}
        for line in draft:
            requested[line.menu_item.id] += line.price_line.qty
            by_id[line.menu_item.id] = line.menu_item

        for menu_item_id, qty in requested.items():
            menu_item = by_id[menu_item_id]
            if menu_item.stock is None:
                continue
            if menu_item.stock < qty:
                raise InvalidOrderItem(
                    f"Only {menu_item.stock} of {menu_item.name} left", menu_item_id
                )
            menu_item.stock -= qty

    def _generate_unique_code(self, outlet_id: int) -> str:
        for _ in range(self._config.order_code_max_attempts):
            code = generate_order_code(self._config.order_code_length)
            exists = self._db.scalar(
                select(Order.id).where(Order.outlet_id == outlet_id, Order.order_code == code)
            )
            if exists is None:
                return code
        logger.error("Could not generate a unique order code", outlet_id=outlet_id)
        raise InvalidOperation("Could not allocate an order code, please retry")

    @staticmethod
    def _apply_totals(order: Order, totals: Totals) -> None:
        order.subtotal = totals.subtotal
        order.discount = totals.discount
        order.tax = totals.tax
        order.service = totals.service
        order.total = totals.total

    # =========================================================================
    # Status changes
    # =========================================================================

    def change_status(
        self,
        order_id: int,
        target: str,
        actor: dict[str, Any] | None,
        outlet_ids: Collection[int] | None = None,
    ) -> tuple[Order, list[Event]]:
        """
        Apply a guarded fulfillment transition.

        A request for the current status changes nothing and emits nothing.
        Raises IllegalStateTransition when the table or the payment gate
        forbids the move.
        """
        order = self._load_order(order_id, outlet_ids, lock=True)
        previous = order.status
        if not order.advance_to(target):
            return order, []

        order.set_updated_by(actor.get("user_id") if actor else None)
        log_change(
            self._db,
            outlet_id=order.outlet_id,
            entity_type="order",
            entity_id=order.id,
            action=AuditAction.ORDER_STATUS_CHANGED,
            actor=actor,
            old_values={"status": previous},
            new_values={"status": target},
        )
        events = [order_status_event(order, previous, actor)]
        safe_commit(self._db)

        logger.info(
            "Order status changed",
            order_id=order.id,
            outlet_id=order.outlet_id,
            from_status=previous,
            to_status=target,
        )
        return order, events

    def apply_discount(
        self,
        order_id: int,
        discount: int,
        actor: dict[str, Any] | None,
        outlet_ids: Collection[int] | None = None,
    ) -> tuple[Order, list[Event]]:
        """
        Recalculate an unpaid order with a new discount.

        Uses the rates and rounding snapshotted on the order, never the
        outlet's current settings. The payment amount follows the new total.
        """
        order = self._load_order(order_id, outlet_ids, lock=True)
        if order.status in OrderStatus.TERMINAL:
            raise InvalidOperation(f"Order is {order.status}")
        if order.payment_status not in PaymentStatus.CONFIRMABLE:
            raise InvalidOperation(f"Payment is already {order.payment_status}")

        fiscal = FiscalSettings(
            tax_rate=order.tax_rate,
            service_rate=order.service_rate,
            rounding=order.rounding,
        )
        lines = [
            PriceLine(
                base_price=item.base_price_snapshot,
                qty=item.qty,
                variant_price_delta=item.variant_price_delta_snapshot,
                addon_prices=tuple(a["price"] for a in item.addons_snapshot or []),
            )
            for item in order.items
        ]
        totals = compute_totals(
            lines,
            fiscal,
            discount=discount,
            tax_on_discounted_subtotal=self._config.tax_on_discounted_subtotal,
        )

        old_values = {"discount": order.discount, "total": order.total}
        self._apply_totals(order, totals)
        order.set_updated_by(actor.get("user_id") if actor else None)
        payment = order.active_payment
        events: list[Event] = []
        if payment is not None:
            payment.amount = totals.total
            events.append(payment_updated_event(payment, order, payment.status, actor))

        log_change(
            self._db,
            outlet_id=order.outlet_id,
            entity_type="order",
            entity_id=order.id,
            action=AuditAction.ORDER_DISCOUNT_APPLIED,
            actor=actor,
            old_values=old_values,
            new_values={"discount": order.discount, "total": order.total},
        )
        safe_commit(self._db)

        logger.info(
            "Order discount applied",
            order_id=order.id,
            discount=discount,
            total=order.total,
        )
        return order, events

    def expire_stale_orders(
        self,
        older_than_minutes: int,
        now: datetime | None = None,
    ) -> tuple[int, list[Event]]:
        """
        Cancel NEW orders whose payment was never confirmed.

        Returns the number of cancelled orders and their events. A
        non-positive ``older_than_minutes`` disables the sweep.
        """
        if older_than_minutes <= 0:
            return 0, []

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=older_than_minutes)
        orders = self._db.scalars(
            select(Order)
            .where(
                Order.status == OrderStatus.NEW,
                Order.payment_status.in_(PaymentStatus.CONFIRMABLE),
                Order.created_at < cutoff,
            )
            .order_by(Order.id)
            .with_for_update(skip_locked=True)
        ).all()

        events: list[Event] = []
        for order in orders:
            transition_order(order, OrderStatus.CANCELLED)
            log_change(
                self._db,
                outlet_id=order.outlet_id,
                entity_type="order",
                entity_id=order.id,
                action=AuditAction.ORDER_EXPIRED,
                old_values={"status": OrderStatus.NEW},
                new_values={"status": OrderStatus.CANCELLED},
            )
            events.append(order_status_event(order, OrderStatus.NEW))

        if orders:
            safe_commit(self._db)
            logger.info("Expired unpaid orders", count=len(orders), cutoff=cutoff.isoformat())
        return len(orders), events
