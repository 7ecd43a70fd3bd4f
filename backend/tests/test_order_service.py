"""
Tests for OrderService: creation from both channels, status changes,
discounts, queries and the expiry sweep.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from pos_api.models import AuditLog, MenuItem, Order, OrderItem
from pos_api.services.domain import (
    ChannelNotEnabled,
    EmptyOrder,
    IllegalStateTransition,
    InvalidDiscount,
    InvalidOperation,
    InvalidOrderItem,
    NotFound,
    OrderService,
    PaymentMethodNotEnabled,
    load_kitchen_board,
)
from pos_api.services.domain.order_service import (
    ORDER_CODE_ALPHABET,
    generate_order_code,
    initial_payment_status,
)
from shared.config.constants import (
    AuditAction,
    OrderChannel,
    OrderMode,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from shared.config.settings import Settings
from shared.infrastructure.events import ORDER_CREATED, ORDER_STATUS_UPDATED, PAYMENT_UPDATED
from shared.utils.schemas import CreateQrOrderRequest, CustomerInput, OrderItemInput

from conftest import QR_TOKEN


class TestQrOrderCreation:
    """Customer orders from a table QR code."""

    def test_totals_match_outlet_settings(self, place_qr_order):
        """1x Nasi Goreng + 1x Es Teh at 10% tax, 5% service, nearest 100."""
        placed = place_qr_order()
        order = placed.order

        assert order.subtotal == 33000
        assert order.tax == 3300
        assert order.service == 1650
        assert order.total == 38000
        assert placed.payment.amount == 38000
        assert order.tax_rate == 10
        assert order.service_rate == 5

    def test_transfer_order_waits_for_confirmation(self, db_session, place_qr_order):
        placed = place_qr_order(PaymentMethod.TRANSFER)

        assert placed.order.status == OrderStatus.NEW
        assert placed.order.payment_status == PaymentStatus.PENDING
        assert placed.payment.status == PaymentStatus.PENDING
        assert placed.order.channel == OrderChannel.QR

        board = load_kitchen_board(db_session, placed.order.outlet_id)
        assert placed.order.id not in [o.id for o in board.incoming]

    def test_snapshots_names_variants_and_addons(self, place_qr_order):
        placed = place_qr_order(
            items=[OrderItemInput(menu_item_id=1, qty=2, variant_name="Large", addon_ids=[1], note="pedas")]
        )
        item = placed.order.items[0]

        assert item.name_snapshot == "Nasi Goreng"
        assert item.base_price_snapshot == 25000
        assert item.variant_name_snapshot == "Large"
        assert item.variant_price_delta_snapshot == 5000
        assert item.addons_snapshot == [{"addon_id": 1, "name": "Extra Egg", "price": 4000}]
        assert item.unit_price == 34000
        assert item.line_total == 68000
        assert item.note == "pedas"
        assert placed.order.subtotal == 68000

    def test_order_code_shape(self, place_qr_order):
        code = place_qr_order().order.order_code
        assert len(code) == 6
        assert all(c in ORDER_CODE_ALPHABET for c in code)

    def test_emits_order_created_and_audits(self, db_session, place_qr_order):
        placed = place_qr_order()

        assert [e.type for e in placed.events] == [ORDER_CREATED]
        event = placed.events[0]
        assert event.outlet_id == placed.order.outlet_id
        assert event.order_id == placed.order.id
        assert event.payment_id == placed.payment.id
        assert event.entity["order_code"] == placed.order.order_code

        audit = db_session.scalar(select(AuditLog).where(AuditLog.entity_id == placed.order.id))
        assert audit.action == AuditAction.ORDER_CREATED
        assert audit.actor_id is None

    def test_empty_cart_rejected(self, place_qr_order):
        with pytest.raises(EmptyOrder):
            place_qr_order(items=[])

    def test_unknown_qr_token(self, db_session, seed_table):
        request = CreateQrOrderRequest(
            qr_token="nope",
            items=[OrderItemInput(menu_item_id=1, qty=1)],
            payment_method=PaymentMethod.CASH,
        )
        with pytest.raises(NotFound):
            OrderService(db_session).create_qr_order(request)

    def test_mismatched_table_id_rejected(self, db_session, seed_table, seed_menu):
        request = CreateQrOrderRequest(
            qr_token=QR_TOKEN,
            table_id=999,
            items=[OrderItemInput(menu_item_id=1, qty=1)],
            payment_method=PaymentMethod.CASH,
        )
        with pytest.raises(NotFound):
            OrderService(db_session).create_qr_order(request)

    def test_payment_method_must_be_enabled(self, db_session, seed_outlet, place_qr_order):
        seed_outlet.enabled_payment_methods = [PaymentMethod.CASH]
        db_session.commit()

        with pytest.raises(PaymentMethodNotEnabled):
            place_qr_order(PaymentMethod.QR)

    def test_pos_only_outlet_rejects_qr(self, db_session, seed_outlet, place_qr_order):
        seed_outlet.order_mode = OrderMode.POS_ONLY
        db_session.commit()

        with pytest.raises(ChannelNotEnabled):
            place_qr_order()

    def test_named_customer_kept(self, db_session, seed_table, seed_menu):
        request = CreateQrOrderRequest(
            qr_token=QR_TOKEN,
            items=[OrderItemInput(menu_item_id=2, qty=1)],
            customer=CustomerInput(name="Ayu", phone="+628123456789"),
            payment_method=PaymentMethod.CASH,
        )
        order = OrderService(db_session).create_qr_order(request).order
        assert order.customer_name == "Ayu"
        assert order.customer_type == "GUEST"


class TestInvalidItems:
    """Line validation against the live menu."""

    def test_unknown_menu_item(self, place_qr_order):
        with pytest.raises(InvalidOrderItem):
            place_qr_order(items=[OrderItemInput(menu_item_id=999, qty=1)])

    def test_unavailable_item(self, db_session, seed_menu, place_qr_order):
        seed_menu["teh"].is_available = False
        db_session.commit()

        with pytest.raises(InvalidOrderItem) as exc_info:
            place_qr_order(items=[OrderItemInput(menu_item_id=2, qty=1)])
        assert exc_info.value.menu_item_id == 2

    def test_inactive_item(self, db_session, seed_menu, place_qr_order):
        seed_menu["teh"].is_active = False
        db_session.commit()

        with pytest.raises(InvalidOrderItem):
            place_qr_order(items=[OrderItemInput(menu_item_id=2, qty=1)])

    def test_sold_out_item(self, db_session, seed_menu, place_qr_order):
        seed_menu["teh"].stock = 0
        db_session.commit()

        with pytest.raises(InvalidOrderItem, match="sold out"):
            place_qr_order(items=[OrderItemInput(menu_item_id=2, qty=1)])

    def test_unknown_variant(self, place_qr_order):
        with pytest.raises(InvalidOrderItem, match="variant"):
            place_qr_order(items=[OrderItemInput(menu_item_id=1, qty=1, variant_name="Jumbo")])

    def test_addon_not_offered_for_item(self, place_qr_order):
        with pytest.raises(InvalidOrderItem, match="not offered"):
            place_qr_order(items=[OrderItemInput(menu_item_id=2, qty=1, addon_ids=[1])])

    def test_unknown_addon(self, place_qr_order):
        with pytest.raises(InvalidOrderItem):
            place_qr_order(items=[OrderItemInput(menu_item_id=1, qty=1, addon_ids=[42])])

    def test_nothing_persisted_on_failure(self, db_session, place_qr_order):
        with pytest.raises(InvalidOrderItem):
            place_qr_order(
                items=[OrderItemInput(menu_item_id=1, qty=1), OrderItemInput(menu_item_id=999, qty=1)]
            )
        assert db_session.scalar(select(Order)) is None


class TestPosOrderCreation:
    """Orders entered at the register."""

    def test_mark_as_paid_goes_straight_to_kitchen(self, db_session, place_pos_order, cashier):
        placed = place_pos_order(PaymentMethod.CASH, mark_as_paid=True)

        assert placed.order.payment_status == PaymentStatus.PAID
        assert placed.payment.status == PaymentStatus.PAID
        assert placed.payment.confirmed_by_id == cashier["user_id"]
        assert placed.payment.confirmed_at is not None

        board = load_kitchen_board(db_session, placed.order.outlet_id)
        assert [o.id for o in board.incoming] == [placed.order.id]

    def test_cash_without_payment_is_unpaid(self, place_pos_order):
        placed = place_pos_order(PaymentMethod.CASH)
        assert placed.order.payment_status == PaymentStatus.UNPAID

    def test_transfer_without_payment_is_pending(self, place_pos_order):
        placed = place_pos_order(PaymentMethod.TRANSFER)
        assert placed.order.payment_status == PaymentStatus.PENDING

    def test_discount_at_entry(self, place_pos_order):
        # 25000 - 5000 + 2500 tax + 1250 service = 23750 -> 23800
        placed = place_pos_order(discount=5000)
        assert placed.order.discount == 5000
        assert placed.order.total == 23800

    def test_discount_above_subtotal_rejected(self, place_pos_order):
        with pytest.raises(InvalidDiscount):
            place_pos_order(discount=30000)

    def test_created_by_cashier(self, place_pos_order, cashier):
        placed = place_pos_order()
        assert placed.order.created_by_id == cashier["user_id"]
        assert placed.events[0].actor == cashier

    def test_qr_only_outlet_rejects_pos(self, db_session, seed_outlet, place_pos_order):
        seed_outlet.order_mode = OrderMode.QR_ONLY
        db_session.commit()

        with pytest.raises(ChannelNotEnabled):
            place_pos_order()

    def test_table_of_other_outlet_rejected(self, db_session, seed_menu, cashier):
        from shared.utils.schemas import CreatePosOrderRequest

        request = CreatePosOrderRequest(
            outlet_id=1,
            table_id=77,
            items=[OrderItemInput(menu_item_id=1, qty=1)],
            payment_method=PaymentMethod.CASH,
        )
        with pytest.raises(NotFound):
            OrderService(db_session).create_pos_order(request, cashier)


class TestInitialPaymentStatus:
    @pytest.mark.parametrize(
        "channel,method,mark_as_paid,expected",
        [
            (OrderChannel.QR, PaymentMethod.CASH, False, PaymentStatus.PENDING),
            (OrderChannel.QR, PaymentMethod.TRANSFER, True, PaymentStatus.PENDING),
            (OrderChannel.POS, PaymentMethod.CASH, True, PaymentStatus.PAID),
            (OrderChannel.POS, PaymentMethod.CASH, False, PaymentStatus.UNPAID),
            (OrderChannel.POS, PaymentMethod.QR, False, PaymentStatus.PENDING),
        ],
    )
    def test_matrix(self, channel, method, mark_as_paid, expected):
        assert initial_payment_status(channel, method, mark_as_paid) == expected

    def test_generate_order_code_length(self):
        assert len(generate_order_code(8)) == 8


class TestSnapshotImmutability:
    """Menu edits never reach existing orders."""

    def test_menu_edit_does_not_change_order(self, db_session, seed_menu, place_qr_order):
        placed = place_qr_order()
        order_id = placed.order.id

        nasi = db_session.get(MenuItem, 1)
        nasi.name = "Nasi Goreng Spesial"
        nasi.price = 40000
        db_session.commit()
        db_session.expire_all()

        order = OrderService(db_session).get_order(order_id)
        assert order.items[0].name_snapshot == "Nasi Goreng"
        assert order.items[0].base_price_snapshot == 25000
        assert order.total == 38000

    def test_persisted_snapshot_rejects_assignment(self, db_session, place_qr_order):
        placed = place_qr_order()
        item = db_session.scalar(select(OrderItem).where(OrderItem.order_id == placed.order.id))

        with pytest.raises(ValueError, match="snapshot"):
            item.base_price_snapshot = 1
        with pytest.raises(ValueError):
            item.name_snapshot = "Other"

    def test_outlet_rate_change_keeps_order_rates(self, db_session, seed_outlet, place_qr_order):
        placed = place_qr_order()
        seed_outlet.tax_rate = 11
        db_session.commit()

        order = OrderService(db_session).get_order(placed.order.id)
        assert order.tax_rate == 10
        assert order.tax == 3300


class TestStock:
    """Optional stock decrement."""

    def _service(self, db_session):
        return OrderService(db_session, Settings(decrement_stock_on_order=True))

    def _request(self, qty):
        return CreateQrOrderRequest(
            qr_token=QR_TOKEN,
            items=[OrderItemInput(menu_item_id=2, qty=qty)],
            payment_method=PaymentMethod.CASH,
        )

    def test_stock_decremented(self, db_session, seed_table, seed_menu):
        seed_menu["teh"].stock = 5
        db_session.commit()

        self._service(db_session).create_qr_order(self._request(3))

        assert db_session.get(MenuItem, 2).stock == 2

    def test_insufficient_stock_rejected(self, db_session, seed_table, seed_menu):
        seed_menu["teh"].stock = 2
        db_session.commit()

        with pytest.raises(InvalidOrderItem, match="Only 2"):
            self._service(db_session).create_qr_order(self._request(3))

    def test_untracked_stock_left_alone(self, db_session, seed_table, seed_menu):
        self._service(db_session).create_qr_order(self._request(3))
        assert db_session.get(MenuItem, 2).stock is None

    def test_stock_untouched_when_disabled(self, db_session, seed_table, seed_menu):
        seed_menu["teh"].stock = 5
        db_session.commit()

        OrderService(db_session, Settings(decrement_stock_on_order=False)).create_qr_order(self._request(3))
        assert db_session.get(MenuItem, 2).stock == 5


class TestChangeStatus:
    """Guarded status changes through the service."""

    def test_new_to_served_unpaid_conflict(self, db_session, place_qr_order, cashier):
        placed = place_qr_order()

        with pytest.raises(IllegalStateTransition):
            OrderService(db_session).change_status(placed.order.id, OrderStatus.SERVED, cashier)

        db_session.expire_all()
        assert OrderService(db_session).get_order(placed.order.id).status == OrderStatus.NEW

    def test_valid_change_emits_event_and_audit(self, db_session, place_pos_order, cashier):
        placed = place_pos_order(mark_as_paid=True)

        order, events = OrderService(db_session).change_status(
            placed.order.id, OrderStatus.IN_PROGRESS, cashier
        )

        assert order.status == OrderStatus.IN_PROGRESS
        assert order.updated_by_id == cashier["user_id"]
        assert [e.type for e in events] == [ORDER_STATUS_UPDATED]
        assert events[0].entity["previous_status"] == OrderStatus.NEW

        actions = db_session.scalars(select(AuditLog.action).where(AuditLog.entity_id == order.id)).all()
        assert AuditAction.ORDER_STATUS_CHANGED in actions

    def test_same_status_emits_nothing(self, db_session, place_qr_order, cashier):
        placed = place_qr_order()
        order, events = OrderService(db_session).change_status(placed.order.id, OrderStatus.NEW, cashier)
        assert events == []
        assert order.status == OrderStatus.NEW

    def test_other_outlet_looks_missing(self, db_session, place_qr_order, cashier):
        placed = place_qr_order()
        with pytest.raises(NotFound):
            OrderService(db_session).change_status(
                placed.order.id, OrderStatus.CANCELLED, cashier, outlet_ids=[2]
            )


class TestApplyDiscount:
    def test_recalculates_with_snapshotted_rates(self, db_session, seed_outlet, place_pos_order, cashier):
        placed = place_pos_order(PaymentMethod.CASH)
        seed_outlet.tax_rate = 20
        db_session.commit()

        order, events = OrderService(db_session).apply_discount(placed.order.id, 5000, cashier)

        assert order.discount == 5000
        assert order.tax == 2500
        assert order.total == 23800
        assert order.active_payment.amount == 23800
        assert [e.type for e in events] == [PAYMENT_UPDATED]

    def test_paid_order_rejected(self, db_session, place_pos_order, cashier):
        placed = place_pos_order(mark_as_paid=True)
        with pytest.raises(InvalidOperation):
            OrderService(db_session).apply_discount(placed.order.id, 1000, cashier)

    def test_discount_above_subtotal(self, db_session, place_pos_order, cashier):
        placed = place_pos_order()
        with pytest.raises(InvalidDiscount):
            OrderService(db_session).apply_discount(placed.order.id, 999999, cashier)

    def test_cancelled_order_rejected(self, db_session, place_pos_order, cashier):
        placed = place_pos_order()
        service = OrderService(db_session)
        service.change_status(placed.order.id, OrderStatus.CANCELLED, cashier)
        with pytest.raises(InvalidOperation):
            service.apply_discount(placed.order.id, 1000, cashier)


class TestQueries:
    def test_list_orders_filters_and_counts(self, db_session, place_qr_order, place_pos_order):
        place_qr_order()
        place_qr_order()
        paid = place_pos_order(mark_as_paid=True)
        service = OrderService(db_session)

        orders, total = service.list_orders(1)
        assert total == 3
        assert orders[0].id == paid.order.id

        orders, total = service.list_orders(1, payment_status=PaymentStatus.PAID)
        assert total == 1
        assert orders[0].id == paid.order.id

        orders, total = service.list_orders(1, limit=1, offset=1)
        assert len(orders) == 1
        assert total == 3

    def test_public_lookup_needs_matching_code(self, db_session, place_qr_order):
        placed = place_qr_order()
        service = OrderService(db_session)

        assert service.get_public_order(placed.order.id, placed.order.order_code.lower()).id == placed.order.id
        with pytest.raises(NotFound):
            service.get_public_order(placed.order.id, "WRONG1")

    def test_get_by_code(self, db_session, place_qr_order):
        placed = place_qr_order()
        order = OrderService(db_session).get_by_code(1, placed.order.order_code)
        assert order.id == placed.order.id
        with pytest.raises(NotFound):
            OrderService(db_session).get_by_code(2, placed.order.order_code)

    def test_list_menu(self, db_session, seed_menu):
        items, addons = OrderService(db_session).list_menu(1)
        assert [i.name for i in items] == ["Es Teh", "Nasi Goreng"]
        assert [a.name for a in addons] == ["Extra Egg"]

    def test_list_menu_unknown_outlet(self, db_session):
        with pytest.raises(NotFound):
            OrderService(db_session).list_menu(404)


class TestExpireStaleOrders:
    def test_cancels_only_old_unpaid_new_orders(self, db_session, place_qr_order, place_pos_order):
        stale = place_qr_order()
        paid = place_pos_order(mark_as_paid=True)
        later = datetime.now(timezone.utc) + timedelta(minutes=31)

        count, events = OrderService(db_session).expire_stale_orders(30, now=later)

        assert count == 1
        assert [e.order_id for e in events] == [stale.order.id]
        assert events[0].type == ORDER_STATUS_UPDATED
        db_session.expire_all()
        assert db_session.get(Order, stale.order.id).status == OrderStatus.CANCELLED
        assert db_session.get(Order, paid.order.id).status == OrderStatus.NEW

    def test_recent_orders_survive(self, db_session, place_qr_order):
        place_qr_order()
        count, events = OrderService(db_session).expire_stale_orders(30)
        assert (count, events) == (0, [])

    def test_disabled_sweep(self, db_session, place_qr_order):
        place_qr_order()
        later = datetime.now(timezone.utc) + timedelta(days=1)
        assert OrderService(db_session).expire_stale_orders(0, now=later) == (0, [])
