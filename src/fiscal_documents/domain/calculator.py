"""Line and document totals.

Every computed amount is rounded to cents (half up) at the point it is
produced, and document totals are always rebuilt from the current lines.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from fiscal_documents.domain.documents import Document, LineItem
from fiscal_documents.domain.value_objects import (
    HUNDRED,
    VAT_RATES,
    ZERO,
    VatCategory,
    round_money,
    to_decimal,
)
from fiscal_documents.exceptions import ValidationError


@dataclass(frozen=True)
class LineAmounts:
    gross: Decimal
    discount: Decimal
    net: Decimal
    vat: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount_amount: Decimal
    vat_amount: Decimal
    withholding_amount: Decimal
    other_charges: Decimal
    total: Decimal


def vat_rate_for(category: VatCategory) -> Decimal:
    return VAT_RATES[VatCategory(category)]


def compute_line_amounts(
    quantity: Decimal,
    unit_price: Decimal,
    vat_category: VatCategory,
    discount_percent: Decimal = Decimal("0"),
    discount_amount: Decimal = Decimal("0"),
) -> LineAmounts:
    """Compute gross, discount, net, VAT and total for a single line.

    A non-zero discount percentage takes precedence over an explicit
    discount amount.
    """
    quantity = to_decimal(quantity, "quantity")
    unit_price = to_decimal(unit_price, "unit_price")
    discount_percent = to_decimal(discount_percent, "discount_percent")
    discount_amount = to_decimal(discount_amount, "discount_amount")

    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero", field="quantity")
    if unit_price < 0:
        raise ValidationError("unit_price must not be negative", field="unit_price")
    if discount_percent < 0 or discount_percent > HUNDRED:
        raise ValidationError(
            "discount_percent must be between 0 and 100", field="discount_percent"
        )
    if discount_amount < 0:
        raise ValidationError(
            "discount_amount must not be negative", field="discount_amount"
        )

    gross = quantity * unit_price
    if discount_percent > 0:
        discount = round_money(gross * discount_percent / HUNDRED)
    else:
        discount = discount_amount
        if discount > gross:
            raise ValidationError(
                "discount_amount must not exceed the line amount",
                field="discount_amount",
            )

    net = round_money(gross - discount)
    vat = round_money(net * vat_rate_for(vat_category) / HUNDRED)
    return LineAmounts(
        gross=round_money(gross),
        discount=round_money(discount),
        net=net,
        vat=vat,
        total=net + vat,
    )


def calculate_line(line: LineItem) -> LineItem:
    """Fill the computed amounts of ``line`` in place."""
    amounts = compute_line_amounts(
        line.quantity,
        line.unit_price,
        line.vat_category,
        discount_percent=line.discount_percent,
        discount_amount=line.discount_amount,
    )
    line.discount_amount = amounts.discount
    line.net_amount = amounts.net
    line.vat_amount = amounts.vat
    line.total_amount = amounts.total
    return line


def calculate_totals(
    lines: Iterable[LineItem],
    withholding_rate: Decimal = Decimal("0"),
    other_charges: Decimal = Decimal("0"),
) -> DocumentTotals:
    """Roll the already-calculated lines up into header totals."""
    withholding_rate = to_decimal(withholding_rate, "withholding_rate")
    other_charges = to_decimal(other_charges, "other_charges")
    if withholding_rate < 0 or withholding_rate > HUNDRED:
        raise ValidationError(
            "withholding_rate must be between 0 and 100", field="withholding_rate"
        )
    if other_charges < 0:
        raise ValidationError(
            "other_charges must not be negative", field="other_charges"
        )

    subtotal = ZERO
    discount_total = ZERO
    vat_total = ZERO
    for line in lines:
        subtotal += line.net_amount
        discount_total += line.discount_amount
        vat_total += line.vat_amount

    subtotal = round_money(subtotal)
    vat_total = round_money(vat_total)
    withholding = round_money(subtotal * withholding_rate / HUNDRED)
    other_charges = round_money(other_charges)
    # Line discounts are already netted into the subtotal.
    total = round_money(subtotal + vat_total - withholding + other_charges)
    return DocumentTotals(
        subtotal=subtotal,
        discount_amount=round_money(discount_total),
        vat_amount=vat_total,
        withholding_amount=withholding,
        other_charges=other_charges,
        total=total,
    )


def recompute_document(document: Document) -> Document:
    """Recalculate every line and the header totals of ``document`` in place.

    Raises ValidationError if the new total would fall below what has
    already been paid.
    """
    for line in document.lines:
        calculate_line(line)
    document.renumber_lines()

    totals = calculate_totals(
        document.lines, document.withholding_rate, document.other_charges
    )
    if totals.total < document.paid_amount:
        raise ValidationError(
            f"Total {totals.total} would be less than the amount already paid "
            f"({document.paid_amount})",
            field="total",
        )

    document.subtotal = totals.subtotal
    document.discount_amount = totals.discount_amount
    document.vat_amount = totals.vat_amount
    document.withholding_amount = totals.withholding_amount
    document.other_charges = totals.other_charges
    document.total = totals.total
    document.balance_due = round_money(totals.total - document.paid_amount)
    return document
