"""
Invoice calculator tests (no database).

Verifies:
- Cascading percent items depend on item order
- kg items use the supplied amount, then weight x rate, then quantity x rate
- Discount parsing of free text
- Tax applied after discount; negative after-discount allowed
- Base-currency equivalents only for foreign currencies with rates loaded
"""

from decimal import Decimal

from freight_billing.services.invoice_calculator import (
    LineItemInput,
    calculate_invoice,
    calculate_line_items,
    calculate_totals,
    parse_discount,
)


# =============================================================================
# LINE ITEMS
# =============================================================================


class TestLineItems:

    def test_percent_after_fixed(self):
        result = calculate_line_items([
            {"quantity": 1, "unit_price": 100, "unit_type": "fixed"},
            {"quantity": 1, "unit_price": 10, "unit_type": "percent"},
        ])
        assert result.amounts == [Decimal("100"), Decimal("10")]
        assert result.subtotal == Decimal("110")

    def test_leading_percent_is_zero(self):
        result = calculate_line_items([
            {"quantity": 1, "unit_price": 10, "unit_type": "percent"},
            {"quantity": 1, "unit_price": 100, "unit_type": "fixed"},
        ])
        assert result.amounts[0] == Decimal("0")
        assert result.subtotal == Decimal("100")

    def test_percent_cascades_on_running_total(self):
        # goods 1000, handling 10% = 100, surcharge 5% of 1100 = 55
        result = calculate_line_items([
            {"quantity": 2, "unit_price": 500},
            {"unit_price": 10, "unit_type": "percent"},
            {"unit_price": 5, "unit_type": "percent"},
        ])
        assert result.amounts == [Decimal("1000"), Decimal("100"), Decimal("55")]
        assert result.subtotal == Decimal("1155")

    def test_kg_uses_supplied_amount(self):
        result = calculate_line_items([
            {"quantity": 3, "unit_price": 4, "unit_type": "kg", "amount": "250.50", "weight_kg": 100},
        ])
        assert result.subtotal == Decimal("250.50")

    def test_kg_weight_times_rate(self):
        result = calculate_line_items([
            {"unit_price": "2.5", "unit_type": "kg", "weight_kg": 40},
        ])
        assert result.subtotal == Decimal("100.0")

    def test_kg_falls_back_to_quantity(self):
        result = calculate_line_items([
            {"quantity": 12, "unit_price": 3, "unit_type": "kg"},
        ])
        assert result.subtotal == Decimal("36")

    def test_unknown_unit_type_is_fixed(self):
        result = calculate_line_items([{"quantity": 2, "unit_price": 7, "unit_type": ""}])
        assert result.subtotal == Decimal("14")

    def test_malformed_numbers_count_as_zero(self):
        result = calculate_line_items([
            {"quantity": 1, "unit_price": "abc"},
            {"quantity": 1, "unit_price": 50},
        ])
        assert result.amounts == [Decimal("0"), Decimal("50")]

    def test_empty(self):
        result = calculate_line_items([])
        assert result.amounts == []
        assert result.subtotal == Decimal("0")

    def test_accepts_dataclass_input(self):
        result = calculate_line_items([LineItemInput(quantity=Decimal("2"), unit_price=Decimal("0.1"))])
        assert result.subtotal == Decimal("0.2")


# =============================================================================
# DISCOUNT
# =============================================================================


class TestParseDiscount:

    def test_percent(self):
        assert parse_discount("10%", Decimal("200")) == Decimal("20")

    def test_flat_with_symbol(self):
        assert parse_discount("$25.00", Decimal("200")) == Decimal("25.00")

    def test_garbage(self):
        assert parse_discount("garbage", Decimal("200")) == Decimal("0")

    def test_empty_and_none(self):
        assert parse_discount("", Decimal("200")) == Decimal("0")
        assert parse_discount(None, Decimal("200")) == Decimal("0")

    def test_percent_with_trailing_text(self):
        assert parse_discount("12.5% loyalty", Decimal("80")) == Decimal("10")

    def test_flat_keeps_leading_number_only(self):
        # "1.2.3" reads as 1.2
        assert parse_discount("1.2.3", Decimal("100")) == Decimal("1.2")

    def test_numeric_value_is_flat(self):
        assert parse_discount(15, Decimal("100")) == Decimal("15")


# =============================================================================
# TOTALS
# =============================================================================


class TestTotals:

    def test_tax_after_discount(self):
        totals = calculate_totals(Decimal("100"), "20%", 10)
        assert totals.discount_amount == Decimal("20")
        assert totals.after_discount == Decimal("80")
        assert totals.tax_amount == Decimal("8")
        assert totals.total == Decimal("88")

    def test_discount_larger_than_subtotal_goes_negative(self):
        totals = calculate_totals(Decimal("10"), "$25", 0)
        assert totals.after_discount == Decimal("-15")
        assert totals.total == Decimal("-15")

    def test_no_base_equivalents_without_rates(self):
        totals = calculate_totals(Decimal("100"), None, 0, currency="USD", rates=None)
        assert totals.base_total is None
        assert totals.base_subtotal is None

    def test_no_base_equivalents_for_base_currency(self):
        totals = calculate_totals(Decimal("100"), None, 0, currency="TZS", rates={"USD": 2500})
        assert totals.base_total is None

    def test_base_equivalents(self):
        totals = calculate_totals(Decimal("100"), "10%", 10, currency="USD", rates={"USD": "2500"})
        assert totals.base_subtotal == Decimal("250000")
        assert totals.base_discount == Decimal("25000")
        assert totals.base_tax == Decimal("22500")
        assert totals.base_total == Decimal("247500")

    def test_base_equivalents_missing_rate_pass_through(self):
        totals = calculate_totals(Decimal("100"), None, 0, currency="XYZ", rates=[])
        assert totals.base_total == Decimal("100")

    def test_to_dict_serializes_decimals(self):
        data = calculate_totals(Decimal("100"), "20%", 10).to_dict()
        assert data["total"] == "88"
        assert data["base_total"] is None


class TestCalculateInvoice:

    def test_composes_items_and_totals(self):
        calculation = calculate_invoice(
            [
                {"quantity": 1, "unit_price": 100},
                {"unit_price": 10, "unit_type": "percent"},
            ],
            "$10",
            "18",
        )
        assert calculation.line_amounts == [Decimal("100"), Decimal("10")]
        assert calculation.totals.subtotal == Decimal("110")
        assert calculation.totals.total == Decimal("118.00")
