"""
Pricing Engine.

Pure totals computation for an order. Money is integer units with no
fractional currency; percentages may be fractional (2.5). All rounding is
half-up on Decimal values so results never depend on float artifacts.

    lines = [PriceLine(base_price=25000, qty=1), PriceLine(base_price=8000, qty=1)]
    fiscal = FiscalSettings(tax_rate=10, service_rate=5, rounding="NEAREST_100")
    compute_totals(lines, fiscal)
    # Totals(subtotal=33000, discount=0, tax=3300, service=1650, total=38000)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from shared.config.constants import RoundingRule
from .errors import InvalidDiscount, InvalidOrderItem

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PriceLine:
    """Prices of one line item as taken from the menu snapshot."""

    base_price: int
    qty: int
    variant_price_delta: int = 0
    addon_prices: tuple[int, ...] = field(default_factory=tuple)

    @property
    def unit_price(self) -> int:
        return self.base_price + self.variant_price_delta + sum(self.addon_prices)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.qty


@dataclass(frozen=True)
class FiscalSettings:
    tax_rate: float = 10
    service_rate: float = 0
    rounding: str = RoundingRule.NONE


@dataclass(frozen=True)
class Totals:
    subtotal: int
    discount: int
    tax: int
    service: int
    total: int


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def apply_rounding(amount: int, rule: str) -> int:
    """
    Snap ``amount`` to the outlet's cash rounding step, halves rounding up.

    NONE is identity. Raises ValueError for an unknown rule.
    """
    try:
        step = RoundingRule.STEP[rule]
    except KeyError:
        raise ValueError(f"Unknown rounding rule: {rule}") from None
    if step == 1:
        return amount
    return round_half_up(Decimal(amount) / step) * step


def _percent_of(amount: int, rate: float) -> int:
    # str() keeps 2.5 as Decimal("2.5") instead of its binary expansion
    return round_half_up(Decimal(amount) * Decimal(str(rate)) / _HUNDRED)


def _validate_line(line: PriceLine) -> None:
    if line.qty <= 0:
        raise InvalidOrderItem(f"Quantity must be positive, got {line.qty}")
    if line.base_price < 0 or any(p < 0 for p in line.addon_prices):
        raise InvalidOrderItem("Prices cannot be negative")
    if line.unit_price < 0:
        raise InvalidOrderItem("Unit price cannot be negative")


def compute_totals(
    lines: Iterable[PriceLine],
    fiscal: FiscalSettings,
    discount: int = 0,
    tax_on_discounted_subtotal: bool = False,
) -> Totals:
    """
    Compute subtotal, tax, service and the rounded grand total.

    Tax and service are percentages of the pre-discount subtotal unless
    ``tax_on_discounted_subtotal`` is set, in which case they apply to
    ``subtotal - discount``. The total is
    ``apply_rounding(subtotal - discount + tax + service, fiscal.rounding)``.

    Raises:
        InvalidOrderItem: non-positive quantity or negative price.
        InvalidDiscount: discount outside ``[0, subtotal]``.
    """
    subtotal = 0
    for line in lines:
        _validate_line(line)
        subtotal += line.line_total

    if discount < 0 or discount > subtotal:
        raise InvalidDiscount(discount, subtotal)

    taxable = subtotal - discount if tax_on_discounted_subtotal else subtotal
    tax = _percent_of(taxable, fiscal.tax_rate)
    service = _percent_of(taxable, fiscal.service_rate)
    total = apply_rounding(subtotal - discount + tax + service, fiscal.rounding)

    return Totals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        service=service,
        total=total,
    )
