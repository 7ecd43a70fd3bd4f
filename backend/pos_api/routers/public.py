"""
Public (customer QR) router.

No authentication: the table QR token identifies outlet and table, and
the order code guards order tracking. Writes are rate limited per IP.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from shared.config.logging import public_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.rate_limit import limiter
from shared.utils.schemas import (
    AddonOutput,
    CreateQrOrderRequest,
    MenuItemPublicOutput,
    OrderOutput,
    OutletPublicOutput,
    PaymentConfirmationResponse,
    PaymentInstructionsOutput,
    PaymentProofRequest,
    PublicMenuOutput,
    QrInstructionsOutput,
    QrOrderCreatedResponse,
    ResolveQrResponse,
    TablePublicOutput,
    TransferInstructionsOutput,
    VariantOutput,
)
from pos_api.models import Outlet
from pos_api.services.domain import OrderService, PaymentService
from pos_api.services.domain.payment_service import build_payment_instructions
from pos_api.services.events import RealtimeNotifier, dispatch_events, get_notifier
from ._common import domain_errors, order_to_output, payment_to_output


router = APIRouter(prefix="/api/public", tags=["public"])


def _outlet_output(outlet: Outlet) -> OutletPublicOutput:
    return OutletPublicOutput(
        id=outlet.id,
        name=outlet.name,
        order_mode=outlet.order_mode,
        tax_rate=outlet.tax_rate,
        service_rate=outlet.service_rate,
        rounding=outlet.rounding,
        enabled_payment_methods=outlet.enabled_payment_methods or [],
    )


@router.get("/resolve/{qr_token}", response_model=ResolveQrResponse)
@limiter.limit(settings.public_read_rate_limit)
def resolve_qr(
    request: Request,
    qr_token: str,
    db: Session = Depends(get_db),
) -> ResolveQrResponse:
    """Resolve a scanned table QR code to its outlet, table and payment options."""
    with domain_errors(public=True):
        outlet, table = OrderService(db).resolve_qr_token(qr_token)

    return ResolveQrResponse(
        outlet=_outlet_output(outlet),
        table=TablePublicOutput(id=table.id, name=table.name),
        transfer=TransferInstructionsOutput(
            bank_name=outlet.transfer_bank_name,
            account_name=outlet.transfer_account_name,
            account_number=outlet.transfer_account_number,
            note=outlet.transfer_note,
        ),
        qr=QrInstructionsOutput(qr_image_url=outlet.qr_image_url, note=outlet.qr_note),
    )


@router.get("/outlets/{outlet_id}/menu", response_model=PublicMenuOutput)
@limiter.limit(settings.public_read_rate_limit)
def get_menu(
    request: Request,
    outlet_id: int,
    db: Session = Depends(get_db),
) -> PublicMenuOutput:
    """Active menu items with their variants and the addons each one accepts."""
    with domain_errors(public=True):
        items, addons = OrderService(db).list_menu(outlet_id)

    result = []
    for item in items:
        allowed = item.allowed_addon_ids
        item_addons = [a for a in addons if allowed is None or a.id in allowed]
        result.append(
            MenuItemPublicOutput(
                id=item.id,
                name=item.name,
                description=item.description,
                category=item.category,
                price=item.price,
                is_available=item.is_available,
                sold_out=item.sold_out,
                variants=[
                    VariantOutput(name=v["name"], price_delta=int(v.get("price_delta", 0)))
                    for v in item.variants or []
                ],
                addons=[AddonOutput.model_validate(a) for a in item_addons],
            )
        )
    return PublicMenuOutput(outlet_id=outlet_id, items=result)


@router.post("/orders", response_model=QrOrderCreatedResponse, status_code=201)
@limiter.limit(settings.public_order_rate_limit)
def create_qr_order(
    request: Request,
    body: CreateQrOrderRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> QrOrderCreatedResponse:
    """
    Place an order from a table QR code.

    The payment starts PENDING; the kitchen sees the order only after a
    cashier confirms the payment.
    """
    service = OrderService(db)
    with domain_errors(public=True):
        placed = service.create_qr_order(body)
        outlet = service.get_outlet(placed.order.outlet_id)

    background_tasks.add_task(dispatch_events, notifier, placed.events)
    logger.info("QR order placed", order_id=placed.order.id, outlet_id=outlet.id)

    instructions = build_payment_instructions(outlet, placed.payment.method, placed.payment.amount)
    return QrOrderCreatedResponse(
        order=order_to_output(placed.order),
        payment=payment_to_output(placed.payment),
        payment_instructions=PaymentInstructionsOutput(**instructions),
    )


@router.get("/orders/{order_id}", response_model=OrderOutput)
@limiter.limit(settings.public_read_rate_limit)
def track_order(
    request: Request,
    order_id: int,
    code: str = Query(min_length=1, max_length=16),
    db: Session = Depends(get_db),
) -> OrderOutput:
    """Customer order tracking. The order code is required."""
    with domain_errors(public=True):
        order = OrderService(db).get_public_order(order_id, code)
    return order_to_output(order)


@router.get("/outlets/{outlet_id}/orders/by-code/{code}", response_model=OrderOutput)
@limiter.limit(settings.public_read_rate_limit)
def track_order_by_code(
    request: Request,
    outlet_id: int,
    code: str,
    db: Session = Depends(get_db),
) -> OrderOutput:
    """Look an order up by the code printed on the customer's screen."""
    with domain_errors(public=True):
        order = OrderService(db).get_by_code(outlet_id, code)
    return order_to_output(order)


@router.post("/orders/{order_id}/payment-proof", response_model=PaymentConfirmationResponse)
@limiter.limit(settings.public_order_rate_limit)
def submit_payment_proof(
    request: Request,
    order_id: int,
    body: PaymentProofRequest,
    background_tasks: BackgroundTasks,
    code: str = Query(min_length=1, max_length=16),
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> PaymentConfirmationResponse:
    """Tell the cashier a transfer/QR payment was sent. Staff still confirms it."""
    with domain_errors(public=True):
        OrderService(db).get_public_order(order_id, code)
        result = PaymentService(db).submit_payment_proof(order_id, body.proof_url, body.note)

    background_tasks.add_task(dispatch_events, notifier, result.events)
    return PaymentConfirmationResponse(
        payment=payment_to_output(result.payment),
        order=order_to_output(result.order),
        changed=result.changed,
    )
