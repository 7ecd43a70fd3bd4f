"""
Property-based Testing with Hypothesis.

Pricing determinism, the payment gate on the kitchen and the kitchen
board filter, checked over generated inputs.
"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings, strategies as st

from pos_api.models import Order, Payment
from pos_api.services.domain import (
    FiscalSettings,
    IllegalStateTransition,
    PriceLine,
    apply_rounding,
    compute_totals,
    kitchen_board,
    orders_for_kitchen,
    transition_order,
    transition_payment,
)
from shared.config.constants import OrderStatus, PaymentStatus, RoundingRule


price_lines = st.lists(
    st.builds(
        PriceLine,
        base_price=st.integers(min_value=0, max_value=500_000),
        qty=st.integers(min_value=1, max_value=99),
        variant_price_delta=st.integers(min_value=0, max_value=50_000),
        addon_prices=st.lists(st.integers(min_value=0, max_value=20_000), max_size=4).map(tuple),
    ),
    max_size=20,
)
fiscal_settings = st.builds(
    FiscalSettings,
    tax_rate=st.sampled_from([0, 2.5, 5, 10, 11, 12.5]),
    service_rate=st.sampled_from([0, 5, 7.5, 10]),
    rounding=st.sampled_from(RoundingRule.ALL),
)


class TestPricingProperties:
    """compute_totals is a pure function of its inputs."""

    @given(lines=price_lines, fiscal=fiscal_settings, data=st.data())
    @settings(max_examples=200)
    def test_totals_are_deterministic(self, lines, fiscal, data):
        subtotal = sum(line.line_total for line in lines)
        discount = data.draw(st.integers(min_value=0, max_value=subtotal))

        first = compute_totals(lines, fiscal, discount=discount)
        second = compute_totals(list(lines), fiscal, discount=discount)

        assert first == second
        assert first.subtotal == subtotal
        assert first.total == apply_rounding(
            first.subtotal - first.discount + first.tax + first.service, fiscal.rounding
        )
        assert first.total >= 0

    @given(amount=st.integers(min_value=0, max_value=10_000_000), rule=st.sampled_from(RoundingRule.ALL))
    def test_rounding_lands_on_step_within_half_step(self, amount, rule):
        step = RoundingRule.STEP[rule]
        rounded = apply_rounding(amount, rule)

        assert rounded % step == 0
        assert abs(rounded - amount) <= step / 2


KITCHEN_STATUSES = (OrderStatus.IN_PROGRESS, OrderStatus.READY, OrderStatus.SERVED)

# Attempted actions: a fulfillment target or a payment target. Refunds are
# left out; the service only refunds cancelled orders.
order_actions = st.lists(
    st.one_of(
        st.tuples(st.just("order"), st.sampled_from(OrderStatus.ALL)),
        st.tuples(st.just("payment"), st.sampled_from(PaymentStatus.CONFIRMABLE + [PaymentStatus.PAID])),
    ),
    max_size=25,
)


class TestPaymentGatesKitchen:
    """No sequence of transitions puts an unpaid order into the kitchen."""

    @given(
        actions=order_actions,
        start_payment=st.sampled_from([PaymentStatus.UNPAID, PaymentStatus.PENDING, PaymentStatus.PAID]),
    )
    @settings(max_examples=300)
    def test_kitchen_statuses_imply_paid(self, actions, start_payment):
        order = Order(status=OrderStatus.NEW, payment_status=start_payment)
        payment = Payment(status=start_payment)

        for kind, target in actions:
            try:
                if kind == "order":
                    transition_order(order, target)
                else:
                    transition_payment(payment, target, order)
            except IllegalStateTransition:
                pass

            if order.status in KITCHEN_STATUSES:
                assert order.payment_status == PaymentStatus.PAID

    @given(target=st.sampled_from(sorted(OrderStatus.REQUIRES_PAYMENT)),
           payment_status=st.sampled_from([PaymentStatus.UNPAID, PaymentStatus.PENDING]))
    def test_unpaid_order_cannot_enter_kitchen(self, target, payment_status):
        for start in (OrderStatus.NEW, OrderStatus.ACCEPTED):
            order = Order(status=start, payment_status=payment_status)
            try:
                transition_order(order, target)
            except IllegalStateTransition:
                pass
            assert order.status == start


statuses = st.sampled_from(OrderStatus.ALL)
payment_statuses = st.sampled_from(PaymentStatus.ALL)
BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@st.composite
def order_sets(draw):
    count = draw(st.integers(min_value=0, max_value=30))
    orders = []
    for i in range(count):
        orders.append(
            Order(
                id=i + 1,
                status=draw(statuses),
                payment_status=draw(payment_statuses),
                created_at=BASE_TIME + timedelta(minutes=draw(st.integers(min_value=0, max_value=600))),
            )
        )
    return orders


class TestKitchenQueueProperties:
    """Only paid, unfinished orders reach the kitchen board."""

    @given(orders=order_sets())
    @settings(max_examples=200)
    def test_board_never_shows_hidden_or_unpaid(self, orders):
        visible = orders_for_kitchen(orders)

        for order in visible:
            assert order.payment_status == PaymentStatus.PAID
            assert order.status not in (OrderStatus.SERVED, OrderStatus.CLOSED, OrderStatus.CANCELLED)

        expected = {
            o.id for o in orders
            if o.payment_status == PaymentStatus.PAID and o.status not in OrderStatus.KITCHEN_HIDDEN
        }
        assert {o.id for o in visible} == expected

    @given(orders=order_sets())
    def test_board_columns_are_oldest_first(self, orders):
        board = kitchen_board(orders)

        for column in (board.incoming, board.cooking, board.ready):
            keys = [(o.created_at, o.id) for o in column]
            assert keys == sorted(keys)

        assert all(o.status in (OrderStatus.NEW, OrderStatus.ACCEPTED) for o in board.incoming)
        assert all(o.status == OrderStatus.IN_PROGRESS for o in board.cooking)
        assert all(o.status == OrderStatus.READY for o in board.ready)
