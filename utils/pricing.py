"""
Cart and order pricing.

All arithmetic runs on integer cents; tax is the only fractional step and it is
rounded half-up to the cent exactly once.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable, Mapping, Union

from core.config import SHIPPING_FLAT_FEE, FREE_SHIPPING_THRESHOLD, TAX_RATE
from core.errors import InvalidQuantity, ValidationError

_CENT = Decimal("0.01")


def to_cents(value: Union[Decimal, str, int]) -> int:
    """Convert a major-unit amount ("49.99", Decimal("49.99"), 49) to cents.

    Floats are refused so binary rounding never enters the ledger.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"Amount must be a decimal string, got {value!r}", field="price")
    try:
        dec = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}", field="price")
    if not dec.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}", field="price")
    return int((dec / _CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    return f"{sign}{cents // 100}.{cents % 100:02d}"


@dataclass(frozen=True)
class PriceBreakdown:
    items_price_cents: int
    shipping_price_cents: int
    tax_price_cents: int
    total_price_cents: int

    def to_dict(self) -> dict:
        return {
            "itemsPrice": format_cents(self.items_price_cents),
            "shippingPrice": format_cents(self.shipping_price_cents),
            "taxPrice": format_cents(self.tax_price_cents),
            "totalPrice": format_cents(self.total_price_cents),
        }


def _line_qty(line: Any) -> Any:
    if isinstance(line, Mapping):
        return line.get("qty", line.get("quantity"))
    return getattr(line, "qty", getattr(line, "quantity", None))


def _line_price_cents(line: Any) -> int:
    if isinstance(line, Mapping):
        cents = line.get("price_cents")
        price = line.get("unit_price", line.get("price"))
    else:
        cents = getattr(line, "price_cents", None)
        price = getattr(line, "unit_price", getattr(line, "price", None))
    if cents is not None:
        if isinstance(cents, bool) or not isinstance(cents, int) or cents < 0:
            raise ValidationError(f"Invalid unit price: {cents!r}", field="price")
        return cents
    if price is None:
        raise ValidationError("Line item has no unit price", field="price")
    value = to_cents(price)
    if value < 0:
        raise ValidationError(f"Invalid unit price: {price!r}", field="price")
    return value


def calc_price(items: Iterable[Any]) -> PriceBreakdown:
    """Price a sequence of line items.

    Each line exposes ``qty`` (or ``quantity``) and either ``price_cents`` or a
    decimal ``unit_price``/``price``; mappings and objects are both accepted.
    """
    items_cents = 0
    for line in items:
        qty = _line_qty(line)
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
            raise InvalidQuantity(qty)
        items_cents += qty * _line_price_cents(line)

    threshold_cents = to_cents(FREE_SHIPPING_THRESHOLD)
    shipping_cents = 0 if items_cents >= threshold_cents else to_cents(SHIPPING_FLAT_FEE)
    if items_cents == 0:
        shipping_cents = 0

    tax_cents = int((Decimal(items_cents) * TAX_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return PriceBreakdown(
        items_price_cents=items_cents,
        shipping_price_cents=shipping_cents,
        tax_price_cents=tax_cents,
        total_price_cents=items_cents + shipping_cents + tax_cents,
    )
