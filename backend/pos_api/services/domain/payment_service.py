"""
Payment Domain Service.

Confirmation is the step that unlocks the kitchen, so it must happen
exactly once per payment even when two cashiers press "confirm" at the
same moment. The payment row is locked and then claimed with a
conditional UPDATE; only the caller whose UPDATE matched a row applies
the side effects and emits events. Everyone else gets the current state
back with ``changed=False``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Collection

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shared.config.constants import AuditAction, OrderChannel, OrderStatus, PaymentMethod, PaymentStatus
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.infrastructure.events import Event
from pos_api.models import Order, Outlet, Payment
from pos_api.services.audit import log_change
from pos_api.services.events.builders import order_status_event, payment_updated_event
from .errors import InvalidOperation, NotFound, PaymentMethodNotEnabled
from .order_lifecycle import transition_order, transition_payment
from .order_service import initial_payment_status

logger = get_logger(__name__)


@dataclass
class PaymentResult:
    """Outcome of a payment operation. ``changed`` is False on idempotent repeats."""

    payment: Payment
    order: Order
    changed: bool
    events: list[Event] = field(default_factory=list)


def build_payment_instructions(outlet: Outlet, method: str, amount: int) -> dict[str, Any]:
    """What the customer sees after placing a QR order."""
    instructions: dict[str, Any] = {"method": method, "amount": amount}
    if method == PaymentMethod.TRANSFER:
        instructions["transfer"] = {
            "bank_name": outlet.transfer_bank_name,
            "account_name": outlet.transfer_account_name,
            "account_number": outlet.transfer_account_number,
            "note": outlet.transfer_note,
        }
        instructions["message"] = "Transfer the exact amount, then show the receipt to the cashier."
    elif method == PaymentMethod.QR:
        instructions["qr"] = {"qr_image_url": outlet.qr_image_url, "note": outlet.qr_note}
        instructions["message"] = "Scan the QR code to pay, then show the receipt to the cashier."
    else:
        instructions["message"] = "Please pay at the cashier."
    return instructions


class PaymentService:
    """Domain service for payment confirmation, method changes, proof submission and refunds."""

    def __init__(self, db: Session):
        self._db = db

    def _load_payment(
        self,
        payment_id: int,
        outlet_ids: Collection[int] | None = None,
        lock: bool = False,
    ) -> Payment:
        stmt = select(Payment).where(Payment.id == payment_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        payment = self._db.scalar(stmt)
        if payment is None or (outlet_ids is not None and payment.outlet_id not in outlet_ids):
            raise NotFound("Payment", payment_id)
        return payment

    def _lock_order(self, order_id: int, outlet_ids: Collection[int] | None = None) -> Order:
        order = self._db.scalar(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if order is None or (outlet_ids is not None and order.outlet_id not in outlet_ids):
            raise NotFound("Order", order_id)
        return order

    def _lock_order_and_payment(
        self,
        payment_id: int,
        outlet_ids: Collection[int] | None = None,
    ) -> tuple[Order, Payment]:
        """Order row first, then the payment row. Status changes lock the order too."""
        order_id = self._load_payment(payment_id, outlet_ids).order_id
        order = self._lock_order(order_id)
        payment = self._load_payment(payment_id, lock=True)
        return order, payment

    def _latest_payment_id(self, order_id: int, outlet_ids: Collection[int] | None) -> int:
        order = self._db.get(Order, order_id)
        if order is None or (outlet_ids is not None and order.outlet_id not in outlet_ids):
            raise NotFound("Order", order_id)
        payment_id = self._db.scalar(
            select(Payment.id)
            .where(Payment.order_id == order_id)
            .order_by(Payment.id.desc())
            .limit(1)
        )
        if payment_id is None:
            raise NotFound("Payment")
        return payment_id

    def _claim_payment(self, payment_id: int) -> bool:
        """
        Compare-and-set UNPAID/PENDING -> PAID.

        Returns True for the single caller whose UPDATE matched the row.
        """
        result = self._db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status.in_(PaymentStatus.CONFIRMABLE),
            )
            .values(status=PaymentStatus.PAID)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _claim_order(self, order_id: int) -> bool:
        """Mirror PAID onto the order unless it was closed or cancelled meanwhile."""
        result = self._db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.not_in(OrderStatus.TERMINAL))
            .values(payment_status=PaymentStatus.PAID)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _reject_attempt(self, payment_id: int) -> bool:
        """Compare-and-set UNPAID/PENDING -> REJECTED."""
        result = self._db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status.in_(PaymentStatus.CONFIRMABLE),
            )
            .values(status=PaymentStatus.REJECTED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # =========================================================================
    # Confirmation
    # =========================================================================

    def confirm_payment(
        self,
        payment_id: int,
        actor: dict[str, Any] | None,
        outlet_ids: Collection[int] | None = None,
    ) -> PaymentResult:
        """
        Mark a payment PAID and release the order to the kitchen.

        Already PAID: returns the current state, no events.
        Raises InvalidOperation when the order is cancelled, or the payment
        was refunded or replaced by another attempt.
        """
        order, payment = self._lock_order_and_payment(payment_id, outlet_ids)

        if order.status == OrderStatus.CANCELLED:
            raise InvalidOperation("Cannot confirm payment of a cancelled order")
        if payment.status == PaymentStatus.REFUNDED:
            raise InvalidOperation("Cannot confirm a refunded payment")
        if payment.status == PaymentStatus.REJECTED:
            raise InvalidOperation("Payment attempt was replaced by another method")
        if payment.status == PaymentStatus.PAID:
            return PaymentResult(payment=payment, order=order, changed=False)

        previous_payment_status = payment.status
        if not self._claim_payment(payment.id):
            # Another request won the race between our read and our update
            self._db.refresh(payment)
            self._db.refresh(order)
            logger.info("Payment already confirmed concurrently", payment_id=payment.id)
            return PaymentResult(payment=payment, order=order, changed=False)
        if not self._claim_order(order.id):
            # Cancelled after our read: undo the payment claim
            self._db.rollback()
            logger.warning("Order cancelled during confirmation", payment_id=payment_id)
            raise InvalidOperation("Cannot confirm payment of a cancelled order")

        actor_id = actor.get("user_id") if actor else None
        # The row is already PAID in the database; bring the ORM state along
        payment.status = PaymentStatus.PAID
        order.payment_status = PaymentStatus.PAID
        payment.confirmed_at = datetime.now(timezone.utc)
        payment.confirmed_by_id = actor_id
        payment.set_updated_by(actor_id)

        previous_status = order.status
        status_changed = False
        if order.status == OrderStatus.NEW:
            status_changed = transition_order(order, OrderStatus.ACCEPTED)
        order.set_updated_by(actor_id)

        log_change(
            self._db,
            outlet_id=order.outlet_id,
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.PAYMENT_CONFIRMED,
            actor=actor,
            old_values={"status": previous_payment_status, "order_status": previous_status},
            new_values={"status": PaymentStatus.PAID, "order_status": order.status},
        )

        events = [payment_updated_event(payment, order, previous_payment_status, actor)]
        if status_changed:
            events.append(order_status_event(order, previous_status, actor))
        safe_commit(self._db)

        logger.info(
            "Payment confirmed",
            payment_id=payment.id,
            order_id=order.id,
            outlet_id=order.outlet_id,
            amount=payment.amount,
            method=payment.method,
        )
        return PaymentResult(payment=payment, order=order, changed=True, events=events)

    def confirm_payment_for_order(
        self,
        order_id: int,
        actor: dict[str, Any] | None,
        outlet_ids: Collection[int] | None = None,
    ) -> PaymentResult:
        """Confirm the latest payment of an order."""
        payment_id = self._latest_payment_id(order_id, outlet_ids)
        return self.confirm_payment(payment_id, actor, outlet_ids)

    # =========================================================================
    # Switching method
    # =========================================================================

    def replace_payment(
        self,
        order_id: int,
        method: str,
        actor: dict[str, Any] | None,
        outlet_ids: Collection[int] | None = None,
    ) -> PaymentResult:
        """
        Switch an unpaid order to another payment method.

        The open attempt is marked REJECTED and a new one is created for the
        order total, so the order still has exactly one active payment. The
        new attempt starts UNPAID for cash and PENDING otherwise. Asking for
        the method already in use changes nothing.
        """
        order = self._lock_order(order_id, outlet_ids)
        current = self._db.scalar(
            select(Payment)
            .where(Payment.order_id == order.id)
            .order_by(Payment.id.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if current is None:
            raise NotFound("Payment")

        if order.status in OrderStatus.TERMINAL:
            raise InvalidOperation(f"Order is {order.status}")
        if current.status not in PaymentStatus.CONFIRMABLE:
            raise InvalidOperation(f"Payment is already {current.status}")
        outlet = self._db.get(Outlet, order.outlet_id)
        if method not in (outlet.enabled_payment_methods or []):
            raise PaymentMethodNotEnabled(method)
        if method == current.method:
            return PaymentResult(payment=current, order=order, changed=False)

        previous_status, previous_method = current.status, current.method
        if not self._reject_attempt(current.id):
            self._db.refresh(current)
            raise InvalidOperation(f"Payment is already {current.status}")

        actor_id = actor.get("user_id") if actor else None
        current.status = PaymentStatus.REJECTED
        current.set_updated_by(actor_id)

        status = initial_payment_status(OrderChannel.POS, method)
        payment = Payment(
            order=order,
            outlet_id=order.outlet_id,
            method=method,
            status=status,
            amount=order.total,
            created_by_id=actor_id,
        )
        self._db.add(payment)
        order.payment_method = method
        order.payment_status = status
        order.set_updated_by(actor_id)
        self._db.flush()

        log_change(
            self._db,
            outlet_id=order.outlet_id,
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.PAYMENT_REPLACED,
            actor=actor,
            old_values={"payment_id": current.id, "method": previous_method, "status": previous_status},
            new_values={"payment_id": payment.id, "method": method, "status": status},
        )
        events = [payment_updated_event(payment, order, previous_status, actor)]
        safe_commit(self._db)

        logger.info(
            "Payment method replaced",
            order_id=order.id,
            rejected_payment_id=current.id,
            payment_id=payment.id,
            method=method,
        )
        return PaymentResult(payment=payment, order=order, changed=True, events=events)

    # =========================================================================
    # Proof and refunds
    # =========================================================================

    def submit_payment_proof(
        self,
        order_id: int,
        proof_url: str | None,
        note: str | None,
    ) -> PaymentResult:
        """
        Customer reports a transfer/QR payment as sent.

        UNPAID moves to PENDING; PENDING stays PENDING with the new proof.
        """
        payment_id = self._latest_payment_id(order_id, None)
        order, payment = self._lock_order_and_payment(payment_id)

        if order.status in OrderStatus.TERMINAL:
            raise InvalidOperation(f"Order is {order.status}")
        if payment.method == PaymentMethod.CASH:
            raise InvalidOperation("Cash payments are settled at the cashier")
        if payment.status not in PaymentStatus.CONFIRMABLE:
            raise InvalidOperation(f"Payment is already {payment.status}")

        previous = payment.status
        transition_payment(payment, PaymentStatus.PENDING, order)
        payment.proof_url = proof_url
        payment.proof_note = note
        payment.proof_submitted_at = datetime.now(timezone.utc)

        log_change(
            self._db,
            outlet_id=order.outlet_id,
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.PAYMENT_PROOF_SUBMITTED,
            old_values={"status": previous},
            new_values={"status": payment.status, "proof_url": proof_url},
        )
        events = [payment_updated_event(payment, order, previous)]
        safe_commit(self._db)

        logger.info("Payment proof submitted", payment_id=payment.id, order_id=order.id)
        return PaymentResult(payment=payment, order=order, changed=True, events=events)

    def refund_payment(
        self,
        payment_id: int,
        actor: dict[str, Any] | None,
        reason: str | None = None,
        outlet_ids: Collection[int] | None = None,
    ) -> PaymentResult:
        """
        Refund a PAID payment of a cancelled order.

        Orders still in the kitchen or already served must be cancelled
        first. Refunding twice returns the current state with no events.
        """
        order, payment = self._lock_order_and_payment(payment_id, outlet_ids)

        if payment.status == PaymentStatus.REFUNDED:
            return PaymentResult(payment=payment, order=order, changed=False)
        if payment.status != PaymentStatus.PAID:
            raise InvalidOperation(f"Only PAID payments can be refunded (payment is {payment.status})")
        if order.status != OrderStatus.CANCELLED:
            raise InvalidOperation("Cancel the order before refunding its payment")

        actor_id = actor.get("user_id") if actor else None
        transition_payment(payment, PaymentStatus.REFUNDED, order)
        payment.refunded_at = datetime.now(timezone.utc)
        payment.refunded_by_id = actor_id
        payment.refund_reason = reason
        payment.set_updated_by(actor_id)

        log_change(
            self._db,
            outlet_id=order.outlet_id,
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.PAYMENT_REFUNDED,
            actor=actor,
            old_values={"status": PaymentStatus.PAID},
            new_values={"status": PaymentStatus.REFUNDED, "reason": reason},
        )
        events = [payment_updated_event(payment, order, PaymentStatus.PAID, actor)]
        safe_commit(self._db)

        logger.info(
            "Payment refunded",
            payment_id=payment.id,
            order_id=order.id,
            amount=payment.amount,
        )
        return PaymentResult(payment=payment, order=order, changed=True, events=events)
