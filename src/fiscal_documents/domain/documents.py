"""Financial document aggregate: header, line items, compliance record, payments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from fiscal_documents.domain.value_objects import (
    VAT_RATES,
    ZERO,
    ComplianceStatus,
    DocumentStatus,
    DocumentType,
    IncomeClassification,
    PaymentMethod,
    VatCategory,
    to_decimal,
)
from fiscal_documents.exceptions import ValidationError

NUMBER_WIDTH = 6


def _utc_now() -> datetime:
    return datetime.now(UTC)


def format_document_number(series: str, sequence_number: int) -> str:
    """Canonical display number, e.g. ``A-000042``."""
    return f"{series}-{sequence_number:0{NUMBER_WIDTH}d}"


@dataclass
class LineItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    id: UUID = field(default_factory=uuid4)
    line_number: int = 0
    item_code: str | None = None
    unit: str = "pcs"
    vat_category: VatCategory = VatCategory.NORMAL
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    vat_exemption_reason: str | None = None
    income_classification: IncomeClassification | None = None
    notes: str | None = None
    net_amount: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total_amount: Decimal = ZERO

    def __post_init__(self) -> None:
        self.quantity = to_decimal(self.quantity, "quantity")
        self.unit_price = to_decimal(self.unit_price, "unit_price")
        self.discount_percent = to_decimal(self.discount_percent, "discount_percent")
        self.discount_amount = to_decimal(self.discount_amount, "discount_amount")
        try:
            self.vat_category = VatCategory(self.vat_category)
            if self.income_classification is not None:
                self.income_classification = IncomeClassification(
                    self.income_classification
                )
        except ValueError as e:
            raise ValidationError(str(e), field="vat_category") from None

    @property
    def vat_rate(self) -> Decimal:
        return VAT_RATES[self.vat_category]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "line_number": self.line_number,
            "item_code": self.item_code,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit": self.unit,
            "unit_price": str(self.unit_price),
            "discount_percent": str(self.discount_percent),
            "discount_amount": str(self.discount_amount),
            "vat_category": self.vat_category.value,
            "net_amount": str(self.net_amount),
            "vat_amount": str(self.vat_amount),
            "total_amount": str(self.total_amount),
            "income_classification": self.income_classification.value
            if self.income_classification
            else None,
        }


@dataclass
class ComplianceRecord:
    status: ComplianceStatus = ComplianceStatus.NOT_SUBMITTED
    mark: str | None = None
    uid: str | None = None
    submitted_at: datetime | None = None
    cancellation_mark: str | None = None
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def has_mark(self) -> bool:
        return self.mark is not None

    @property
    def is_certified(self) -> bool:
        return self.status in (ComplianceStatus.SUBMITTED, ComplianceStatus.ACCEPTED)

    @property
    def can_submit(self) -> bool:
        return self.status in (
            ComplianceStatus.NOT_SUBMITTED,
            ComplianceStatus.REJECTED,
        )


@dataclass
class Payment:
    document_id: UUID
    amount: Decimal
    id: UUID = field(default_factory=uuid4)
    method: PaymentMethod | None = None
    payment_date: date = field(default_factory=date.today)
    notes: str | None = None
    recorded_by: str | None = None
    created_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        self.amount = to_decimal(self.amount, "amount")


@dataclass
class Document:
    document_type: DocumentType
    counterparty_id: UUID
    issue_date: date = field(default_factory=date.today)
    id: UUID = field(default_factory=uuid4)
    series: str = ""
    fiscal_year: int | None = None
    sequence_number: int | None = None
    due_date: date | None = None
    delivery_date: date | None = None
    related_document_id: UUID | None = None
    currency: str = "EUR"
    exchange_rate: Decimal = Decimal("1")
    payment_method: PaymentMethod | None = None
    payment_terms: str | None = None
    lines: list[LineItem] = field(default_factory=list)
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    vat_amount: Decimal = ZERO
    withholding_rate: Decimal = Decimal("0")
    withholding_amount: Decimal = ZERO
    other_charges: Decimal = ZERO
    total: Decimal = ZERO
    paid_amount: Decimal = ZERO
    balance_due: Decimal = ZERO
    status: DocumentStatus = DocumentStatus.DRAFT
    compliance: ComplianceRecord = field(default_factory=ComplianceRecord)
    customer_notes: str | None = None
    internal_notes: str | None = None
    created_by: str | None = None
    updated_by: str | None = None
    locked_by: str | None = None
    locked_at: datetime | None = None
    sent_at: datetime | None = None
    viewed_at: datetime | None = None
    emailed_to: str | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    deleted_at: datetime | None = None
    version: int = 1

    def __post_init__(self) -> None:
        try:
            self.document_type = DocumentType(self.document_type)
            self.status = DocumentStatus(self.status)
            if self.payment_method is not None:
                self.payment_method = PaymentMethod(self.payment_method)
        except ValueError as e:
            raise ValidationError(str(e)) from None
        self.series = self.series.strip().upper()
        self.currency = self.currency.upper()
        self.exchange_rate = to_decimal(self.exchange_rate, "exchange_rate")
        self.withholding_rate = to_decimal(self.withholding_rate, "withholding_rate")
        self.other_charges = to_decimal(self.other_charges, "other_charges")

    @property
    def document_number(self) -> str | None:
        if self.sequence_number is None:
            return None
        return format_document_number(self.series, self.sequence_number)

    @property
    def has_number(self) -> bool:
        return self.sequence_number is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def assign_number(self, sequence_number: int) -> None:
        if self.sequence_number is not None:
            raise ValidationError(
                f"Document {self.id} already numbered {self.document_number}",
                field="sequence_number",
            )
        if sequence_number < 1:
            raise ValidationError(
                "Sequence numbers start at 1", field="sequence_number"
            )
        self.fiscal_year = self.issue_date.year
        self.sequence_number = sequence_number

    def release_number(self) -> None:
        """Forget a number that was never committed (allocation retry)."""
        self.sequence_number = None
        self.fiscal_year = None

    def get_line(self, line_id: UUID) -> LineItem | None:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def renumber_lines(self) -> None:
        for index, line in enumerate(self.lines, start=1):
            line.line_number = index

    def touch(self, actor: str | None) -> None:
        self.updated_at = _utc_now()
        if actor is not None:
            self.updated_by = actor

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe view of the header used for audit diffs."""
        return {
            "document_type": self.document_type.value,
            "series": self.series,
            "document_number": self.document_number,
            "issue_date": self.issue_date.isoformat(),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "counterparty_id": str(self.counterparty_id),
            "currency": self.currency,
            "exchange_rate": str(self.exchange_rate),
            "payment_method": _enum_value(self.payment_method),
            "payment_terms": self.payment_terms,
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "vat_amount": str(self.vat_amount),
            "withholding_rate": str(self.withholding_rate),
            "withholding_amount": str(self.withholding_amount),
            "other_charges": str(self.other_charges),
            "total": str(self.total),
            "paid_amount": str(self.paid_amount),
            "balance_due": str(self.balance_due),
            "status": self.status.value,
            "compliance_status": self.compliance.status.value,
            "compliance_mark": self.compliance.mark,
            "locked_by": self.locked_by,
            "emailed_to": self.emailed_to,
            "customer_notes": self.customer_notes,
            "internal_notes": self.internal_notes,
            "line_count": len(self.lines),
            "lines": [line.to_dict() for line in self.lines],
        }


def _enum_value(value: Enum | None) -> str | None:
    return value.value if value is not None else None
