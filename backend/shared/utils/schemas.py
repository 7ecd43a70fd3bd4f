"""
Shared Pydantic schemas used by the REST API.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

Role = Literal["ADMIN", "CASHIER", "KITCHEN"]
OrderChannelType = Literal["QR", "POS"]
OrderStatusType = Literal["NEW", "ACCEPTED", "IN_PROGRESS", "READY", "SERVED", "CLOSED", "CANCELLED"]
PaymentStatusType = Literal["UNPAID", "PENDING", "PAID", "REFUNDED", "REJECTED"]
PaymentMethodType = Literal["CASH", "TRANSFER", "QR"]
RoundingRuleType = Literal["NONE", "NEAREST_100", "NEAREST_500", "NEAREST_1000"]
OrderModeType = Literal["QR_ONLY", "POS_ONLY", "QR_AND_POS"]
CustomerTypeType = Literal["GUEST", "MEMBER"]


# =============================================================================
# Order Input Schemas
# =============================================================================


class OrderItemInput(BaseModel):
    """One line of a draft order, as submitted by a client."""

    menu_item_id: int
    qty: int = Field(ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    variant_name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    addon_ids: list[int] = Field(default_factory=list, max_length=20)
    note: str | None = Field(default=None, max_length=Limits.MAX_NOTE_LENGTH)


class CustomerInput(BaseModel):
    """Optional customer identity. Omitted on anonymous QR orders."""

    type: CustomerTypeType = "GUEST"
    member_user_id: int | None = None
    name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    phone: str | None = Field(default=None, max_length=Limits.MAX_PHONE_LENGTH)


class CreateQrOrderRequest(BaseModel):
    """Customer order placed from a table QR code."""

    qr_token: str = Field(min_length=1, max_length=128)
    outlet_id: int | None = None
    table_id: int | None = None
    # No min_length: an empty cart is reported as EmptyOrder by the service
    items: list[OrderItemInput] = Field(max_length=Limits.MAX_ITEMS_PER_ORDER)
    customer: CustomerInput | None = None
    payment_method: PaymentMethodType
    note: str | None = Field(default=None, max_length=Limits.MAX_NOTE_LENGTH)


class CreatePosOrderRequest(BaseModel):
    """Order entered by a cashier at the POS."""

    outlet_id: int
    table_id: int | None = None
    items: list[OrderItemInput] = Field(max_length=Limits.MAX_ITEMS_PER_ORDER)
    customer: CustomerInput | None = None
    payment_method: PaymentMethodType
    mark_as_paid: bool = False
    discount: int = Field(default=0, ge=0, le=Limits.MAX_AMOUNT)
    note: str | None = Field(default=None, max_length=Limits.MAX_NOTE_LENGTH)


class UpdateOrderStatusRequest(BaseModel):
    """Request a fulfillment status change."""

    status: OrderStatusType


class ApplyDiscountRequest(BaseModel):
    """Recalculate an unpaid order's totals with a new discount."""

    discount: int = Field(ge=0, le=Limits.MAX_AMOUNT)


class PaymentProofRequest(BaseModel):
    """Customer reports that a transfer/QR payment was sent."""

    proof_url: str | None = Field(default=None, max_length=1000)
    note: str | None = Field(default=None, max_length=Limits.MAX_NOTE_LENGTH)


class RefundPaymentRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=Limits.MAX_NOTE_LENGTH)


class ReplacePaymentRequest(BaseModel):
    """Cashier switches an unpaid order to another payment method."""

    payment_method: PaymentMethodType


# =============================================================================
# Order Output Schemas
# =============================================================================


class AddonSnapshotOutput(BaseModel):
    addon_id: int
    name: str
    price: int


class OrderItemOutput(BaseModel):
    """A line item with its snapshotted name and prices."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    name_snapshot: str
    base_price_snapshot: int
    variant_name_snapshot: str | None = None
    variant_price_delta_snapshot: int = 0
    addons_snapshot: list[AddonSnapshotOutput] = []
    unit_price: int
    qty: int
    line_total: int
    note: str | None = None


class CustomerOutput(BaseModel):
    type: CustomerTypeType
    name: str | None = None
    phone: str | None = None


class OrderOutput(BaseModel):
    """Full order representation returned to POS, KDS and customers."""

    id: int
    order_code: str
    outlet_id: int
    table_id: int | None = None
    table_name: str | None = None
    channel: OrderChannelType
    customer: CustomerOutput
    items: list[OrderItemOutput]
    subtotal: int
    discount: int
    tax: int
    service: int
    total: int
    tax_rate: float
    service_rate: float
    rounding: RoundingRuleType
    status: OrderStatusType
    payment_status: PaymentStatusType
    payment_method: PaymentMethodType
    note: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    # Targets the caller may request; empty on customer reads
    allowed_transitions: list[OrderStatusType] = []


class PaymentOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    method: PaymentMethodType
    status: PaymentStatusType
    amount: int
    confirmed_at: datetime | None = None
    confirmed_by_id: int | None = None
    proof_url: str | None = None
    refunded_at: datetime | None = None


class TransferInstructionsOutput(BaseModel):
    bank_name: str | None = None
    account_name: str | None = None
    account_number: str | None = None
    note: str | None = None


class QrInstructionsOutput(BaseModel):
    qr_image_url: str | None = None
    note: str | None = None


class PaymentInstructionsOutput(BaseModel):
    """How the customer should pay for the chosen method."""

    method: PaymentMethodType
    amount: int
    transfer: TransferInstructionsOutput | None = None
    qr: QrInstructionsOutput | None = None
    message: str


class QrOrderCreatedResponse(BaseModel):
    order: OrderOutput
    payment: PaymentOutput
    payment_instructions: PaymentInstructionsOutput


class PosOrderCreatedResponse(BaseModel):
    order: OrderOutput
    payment: PaymentOutput


class PaymentConfirmationResponse(BaseModel):
    """Result of confirm/refund. ``changed`` is False on idempotent repeats."""

    payment: PaymentOutput
    order: OrderOutput
    changed: bool


class OrderListResponse(BaseModel):
    items: list[OrderOutput]
    total: int
    limit: int
    offset: int
    poll_interval_seconds: int


class KitchenBoardOutput(BaseModel):
    """Kitchen display columns, oldest order first in each column."""

    incoming: list[OrderOutput]
    cooking: list[OrderOutput]
    ready: list[OrderOutput]
    poll_interval_seconds: int


# =============================================================================
# Public (QR) Schemas
# =============================================================================


class OutletPublicOutput(BaseModel):
    id: int
    name: str
    order_mode: OrderModeType
    tax_rate: float
    service_rate: float
    rounding: RoundingRuleType
    enabled_payment_methods: list[PaymentMethodType]


class TablePublicOutput(BaseModel):
    id: int
    name: str


class ResolveQrResponse(BaseModel):
    outlet: OutletPublicOutput
    table: TablePublicOutput
    transfer: TransferInstructionsOutput | None = None
    qr: QrInstructionsOutput | None = None


class VariantOutput(BaseModel):
    name: str
    price_delta: int


class AddonOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: int


class MenuItemPublicOutput(BaseModel):
    id: int
    name: str
    description: str | None = None
    category: str | None = None
    price: int
    is_available: bool
    sold_out: bool
    variants: list[VariantOutput]
    addons: list[AddonOutput]


class PublicMenuOutput(BaseModel):
    outlet_id: int
    items: list[MenuItemPublicOutput]


# =============================================================================
# Reports
# =============================================================================


class SalesSummaryOutput(BaseModel):
    """Sales figures for an outlet and date range. Money sums cover PAID orders."""

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


# =============================================================================
# Errors
# =============================================================================


class ErrorResponse(BaseModel):
    detail: str
