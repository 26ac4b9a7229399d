# Overview: Pure invoice arithmetic: cascading line items, discount, tax and base equivalents.

"""
Invoice Calculator

WHY: The same pricing fold is needed when previewing a quote, creating an
invoice and re-saving an edited one. Keeping it free of database access
lets every caller (and the tests) run it on plain data.

CASCADING LINE ITEMS:
Items are folded left to right with a running total. A percent item is
priced against the running total of the items before it, so a handling
fee of 10% followed by a surcharge of 5% charges the surcharge on
goods + handling. Reordering items changes the result; the caller's order
is preserved exactly. A percent item with nothing before it is worth 0.

TOTALS:
    after_discount = subtotal - discount_amount     (not clamped)
    tax_amount     = after_discount * tax_rate / 100
    total          = after_discount + tax_amount
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from ..constants import UNIT_TYPE_KG, UNIT_TYPE_PERCENT
from ..money import HUNDRED, ZERO, decimal_to_str, parse_leading_number, to_decimal
from . import currency_service


# =============================================================================
# LINE ITEMS
# =============================================================================

@dataclass
class LineItemInput:
    """Pricing-relevant fields of one line item."""
    quantity: Decimal = Decimal(1)
    unit_price: Decimal = ZERO
    unit_type: Optional[str] = None
    # kg items: amount priced elsewhere (rate x weight) and supplied as-is
    amount: Optional[Decimal] = None
    weight_kg: Optional[Decimal] = None

    @classmethod
    def from_data(cls, data: Any) -> "LineItemInput":
        """Build from a dict, a model row, or another LineItemInput."""
        if isinstance(data, LineItemInput):
            return data
        if isinstance(data, Mapping):
            get = data.get
        else:
            def get(key, default=None):
                return getattr(data, key, default)
        return cls(
            quantity=to_decimal(get("quantity"), default=Decimal(1)),
            unit_price=to_decimal(get("unit_price")),
            unit_type=get("unit_type"),
            amount=to_decimal(get("amount"), default=None),
            weight_kg=to_decimal(get("weight_kg"), default=None),
        )


@dataclass(frozen=True)
class LineItemResult:
    amounts: list
    subtotal: Decimal


def line_item_amount(item: LineItemInput, running_total: Decimal) -> Decimal:
    """Amount of a single item given the running total before it."""
    if item.unit_type == UNIT_TYPE_PERCENT:
        return running_total * item.unit_price / HUNDRED
    if item.unit_type == UNIT_TYPE_KG:
        if item.amount is not None:
            return item.amount
        if item.weight_kg is not None:
            return item.weight_kg * item.unit_price
    return item.quantity * item.unit_price


def calculate_line_items(items: Iterable[Any]) -> LineItemResult:
    """
    Fold items in order into per-item amounts and a subtotal.

    Returns:
        LineItemResult with one amount per input item (same order) and the
        final running total.
    """
    running_total = ZERO
    amounts: list[Decimal] = []
    for raw in items:
        item = LineItemInput.from_data(raw)
        item_amount = line_item_amount(item, running_total)
        amounts.append(item_amount)
        running_total += item_amount
    return LineItemResult(amounts=amounts, subtotal=running_total)


# =============================================================================
# DISCOUNT / TAX
# =============================================================================

def parse_discount(discount: Any, subtotal: Any) -> Decimal:
    """
    Turn free-text discount into an amount.

    - "10%"    -> subtotal * 10 / 100
    - "$25.00" -> 25 (everything except digits and '.' is stripped)
    - "", None, "garbage" -> 0

    Numeric values are treated as flat amounts.
    """
    if discount is None:
        return ZERO
    if isinstance(discount, (int, float, Decimal)) and not isinstance(discount, bool):
        return to_decimal(discount)

    text = str(discount)
    if not text.strip():
        return ZERO

    if "%" in text:
        percent = parse_leading_number(text.replace("%", ""))
        if percent is None:
            return ZERO
        return to_decimal(subtotal) * percent / HUNDRED

    fixed = parse_leading_number("".join(ch for ch in text if ch.isdigit() or ch == "."))
    return fixed if fixed is not None else ZERO


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_amount: Decimal
    after_discount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    # Base-currency equivalents; None when the invoice is already in the
    # base currency or no rates were supplied.
    base_subtotal: Optional[Decimal] = None
    base_discount: Optional[Decimal] = None
    base_tax: Optional[Decimal] = None
    base_total: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "subtotal": decimal_to_str(self.subtotal),
            "discount_amount": decimal_to_str(self.discount_amount),
            "after_discount": decimal_to_str(self.after_discount),
            "tax_rate": decimal_to_str(self.tax_rate),
            "tax_amount": decimal_to_str(self.tax_amount),
            "total": decimal_to_str(self.total),
            "base_subtotal": decimal_to_str(self.base_subtotal),
            "base_discount": decimal_to_str(self.base_discount),
            "base_tax": decimal_to_str(self.base_tax),
            "base_total": decimal_to_str(self.base_total),
        }


def calculate_totals(
    subtotal: Any,
    discount: Any = None,
    tax_rate: Any = 0,
    *,
    currency: Optional[str] = None,
    rates: Any = None,
    base_currency: str = currency_service.DEFAULT_BASE_CURRENCY,
    strict: bool = False,
) -> InvoiceTotals:
    """Apply discount then tax to a subtotal; add base equivalents when possible."""
    subtotal_value = to_decimal(subtotal)
    tax_rate_value = to_decimal(tax_rate)

    discount_amount = parse_discount(discount, subtotal_value)
    after_discount = subtotal_value - discount_amount
    tax_amount = after_discount * tax_rate_value / HUNDRED
    total = after_discount + tax_amount

    base_values: dict = {}
    if currency and currency.upper() != base_currency.upper() and rates is not None:
        rate_map = currency_service.build_rate_map(rates, base_currency)

        def _to_base(value: Decimal) -> Decimal:
            return currency_service.to_base(
                value, currency, rate_map, base_currency=base_currency, strict=strict
            )

        base_values = {
            "base_subtotal": _to_base(subtotal_value),
            "base_discount": _to_base(discount_amount),
            "base_tax": _to_base(tax_amount),
            "base_total": _to_base(total),
        }

    return InvoiceTotals(
        subtotal=subtotal_value,
        discount_amount=discount_amount,
        after_discount=after_discount,
        tax_rate=tax_rate_value,
        tax_amount=tax_amount,
        total=total,
        **base_values,
    )


@dataclass(frozen=True)
class InvoiceCalculation:
    line_amounts: list = field(default_factory=list)
    totals: Optional[InvoiceTotals] = None

    def to_dict(self) -> dict:
        return {
            "line_amounts": [decimal_to_str(a) for a in self.line_amounts],
            "totals": self.totals.to_dict() if self.totals else None,
        }


def calculate_invoice(
    items: Iterable[Any],
    discount: Any = None,
    tax_rate: Any = 0,
    *,
    currency: Optional[str] = None,
    rates: Any = None,
    base_currency: str = currency_service.DEFAULT_BASE_CURRENCY,
    strict: bool = False,
) -> InvoiceCalculation:
    """Line-item fold followed by totals, in one call."""
    lines = calculate_line_items(items)
    totals = calculate_totals(
        lines.subtotal,
        discount,
        tax_rate,
        currency=currency,
        rates=rates,
        base_currency=base_currency,
        strict=strict,
    )
    return InvoiceCalculation(line_amounts=lines.amounts, totals=totals)
