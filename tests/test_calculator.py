"""Tests for the line and document totals calculator."""

from decimal import Decimal
from uuid import uuid4

import pytest

from fiscal_documents.domain.calculator import (
    calculate_line,
    calculate_totals,
    compute_line_amounts,
    recompute_document,
    vat_rate_for,
)
from fiscal_documents.domain.documents import Document, LineItem
from fiscal_documents.domain.value_objects import DocumentType, VatCategory
from fiscal_documents.exceptions import ValidationError


def _document(**kwargs) -> Document:
    return Document(
        document_type=DocumentType.INVOICE, counterparty_id=uuid4(), **kwargs
    )


class TestVatRates:
    @pytest.mark.parametrize(
        ("category", "rate"),
        [
            (VatCategory.NORMAL, Decimal("24")),
            (VatCategory.REDUCED, Decimal("13")),
            (VatCategory.SUPER_REDUCED, Decimal("6")),
            (VatCategory.EXEMPT, Decimal("0")),
            (VatCategory.REVERSE_CHARGE, Decimal("0")),
        ],
    )
    def test_rate_table(self, category: VatCategory, rate: Decimal):
        assert vat_rate_for(category) == rate


class TestComputeLineAmounts:
    def test_simple_line(self):
        amounts = compute_line_amounts(Decimal("3"), Decimal("10.00"), VatCategory.NORMAL)

        assert amounts.gross == Decimal("30.00")
        assert amounts.discount == Decimal("0.00")
        assert amounts.net == Decimal("30.00")
        assert amounts.vat == Decimal("7.20")
        assert amounts.total == Decimal("37.20")

    def test_percent_discount(self):
        amounts = compute_line_amounts(
            Decimal("2"),
            Decimal("50.00"),
            VatCategory.NORMAL,
            discount_percent=Decimal("10"),
        )

        assert amounts.discount == Decimal("10.00")
        assert amounts.net == Decimal("90.00")
        assert amounts.vat == Decimal("21.60")

    def test_percent_takes_precedence_over_amount(self):
        amounts = compute_line_amounts(
            Decimal("1"),
            Decimal("100.00"),
            VatCategory.NORMAL,
            discount_percent=Decimal("5"),
            discount_amount=Decimal("50.00"),
        )

        assert amounts.discount == Decimal("5.00")
        assert amounts.net == Decimal("95.00")

    def test_explicit_discount_amount(self):
        amounts = compute_line_amounts(
            Decimal("1"),
            Decimal("100.00"),
            VatCategory.REDUCED,
            discount_amount=Decimal("20.00"),
        )

        assert amounts.net == Decimal("80.00")
        assert amounts.vat == Decimal("10.40")

    def test_rounds_half_up(self):
        amounts = compute_line_amounts(Decimal("1"), Decimal("0.625"), VatCategory.EXEMPT)

        assert amounts.net == Decimal("0.63")
        assert amounts.vat == Decimal("0.00")

    def test_vat_is_rounded_per_line(self):
        amounts = compute_line_amounts(Decimal("3"), Decimal("0.35"), VatCategory.NORMAL)

        # 1.05 * 24% = 0.252
        assert amounts.vat == Decimal("0.25")

    def test_reverse_charge_has_no_vat(self):
        amounts = compute_line_amounts(
            Decimal("1"), Decimal("200.00"), VatCategory.REVERSE_CHARGE
        )

        assert amounts.vat == Decimal("0.00")
        assert amounts.total == Decimal("200.00")

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"quantity": Decimal("0")}, "quantity"),
            ({"quantity": Decimal("-1")}, "quantity"),
            ({"unit_price": Decimal("-0.01")}, "unit_price"),
            ({"discount_percent": Decimal("101")}, "discount_percent"),
            ({"discount_percent": Decimal("-1")}, "discount_percent"),
            ({"discount_amount": Decimal("-1")}, "discount_amount"),
            ({"discount_amount": Decimal("10.01")}, "discount_amount"),
        ],
    )
    def test_rejects_invalid_input(self, kwargs: dict, field: str):
        values = {
            "quantity": Decimal("1"),
            "unit_price": Decimal("10.00"),
            "vat_category": VatCategory.NORMAL,
        }
        values.update(kwargs)

        with pytest.raises(ValidationError) as exc_info:
            compute_line_amounts(**values)

        assert exc_info.value.field == field

    def test_rejects_non_numeric_quantity(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_line_amounts("three", Decimal("1"), VatCategory.NORMAL)

        assert exc_info.value.field == "quantity"


class TestCalculateLine:
    def test_fills_computed_fields(self):
        line = LineItem(
            description="Widget",
            quantity=Decimal("4"),
            unit_price=Decimal("2.50"),
            discount_percent=Decimal("10"),
        )

        calculate_line(line)

        assert line.discount_amount == Decimal("1.00")
        assert line.net_amount == Decimal("9.00")
        assert line.vat_amount == Decimal("2.16")
        assert line.total_amount == Decimal("11.16")


class TestCalculateTotals:
    def test_scenario_a(self, lines_a: list[LineItem]):
        lines = [calculate_line(line) for line in lines_a]

        totals = calculate_totals(lines)

        assert totals.subtotal == Decimal("35.00")
        assert totals.vat_amount == Decimal("7.85")
        assert totals.total == Decimal("42.85")
        assert totals.discount_amount == Decimal("0.00")

    def test_withholding_and_other_charges(self, lines_a: list[LineItem]):
        lines = [calculate_line(line) for line in lines_a]

        totals = calculate_totals(
            lines, withholding_rate=Decimal("20"), other_charges=Decimal("1.50")
        )

        assert totals.withholding_amount == Decimal("7.00")
        assert totals.other_charges == Decimal("1.50")
        assert totals.total == Decimal("37.35")

    def test_no_lines(self):
        totals = calculate_totals([])

        assert totals.subtotal == Decimal("0.00")
        assert totals.total == Decimal("0.00")

    def test_sums_line_discounts(self):
        lines = [
            calculate_line(
                LineItem(
                    description="A",
                    quantity=Decimal("1"),
                    unit_price=Decimal("100"),
                    discount_amount=Decimal("15"),
                )
            ),
            calculate_line(
                LineItem(
                    description="B",
                    quantity=Decimal("1"),
                    unit_price=Decimal("50"),
                    discount_percent=Decimal("10"),
                )
            ),
        ]

        totals = calculate_totals(lines)

        assert totals.discount_amount == Decimal("20.00")
        assert totals.subtotal == Decimal("130.00")

    def test_rejects_withholding_over_100(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_totals([], withholding_rate=Decimal("150"))

        assert exc_info.value.field == "withholding_rate"

    def test_rejects_negative_other_charges(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_totals([], other_charges=Decimal("-1"))

        assert exc_info.value.field == "other_charges"


class TestRecomputeDocument:
    def test_sets_header_totals_and_balance(self, lines_a: list[LineItem]):
        document = _document(lines=lines_a)

        recompute_document(document)

        assert document.subtotal == Decimal("35.00")
        assert document.vat_amount == Decimal("7.85")
        assert document.total == Decimal("42.85")
        assert document.balance_due == Decimal("42.85")
        assert [line.line_number for line in document.lines] == [1, 2]

    def test_is_idempotent(self, lines_a: list[LineItem]):
        document = _document(lines=lines_a, withholding_rate=Decimal("20"))

        recompute_document(document)
        first = (document.subtotal, document.vat_amount, document.total)
        recompute_document(document)

        assert (document.subtotal, document.vat_amount, document.total) == first

    def test_balance_accounts_for_payments(self, lines_a: list[LineItem]):
        document = _document(lines=lines_a)
        document.paid_amount = Decimal("10.00")

        recompute_document(document)

        assert document.balance_due == Decimal("32.85")

    def test_rejects_total_below_paid_amount(self, lines_a: list[LineItem]):
        document = _document(lines=lines_a)
        document.paid_amount = Decimal("50.00")

        with pytest.raises(ValidationError) as exc_info:
            recompute_document(document)

        assert exc_info.value.field == "total"
