"""Conversions between domain objects and table rows.

Shared by the SQLite and PostgreSQL repositories. Both drivers hand back
mapping-style rows (``sqlite3.Row`` / ``RealDictCursor``), and both accept the
same named-parameter dicts. Money and quantities are stored as TEXT to keep
Decimal precision.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from fiscal_documents.domain.audit import (
    AuditAction,
    AuditEntityType,
    AuditEntry,
    AuditOutcome,
)
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import (
    ComplianceRecord,
    Document,
    LineItem,
    Payment,
)
from fiscal_documents.domain.value_objects import (
    ComplianceStatus,
    DocumentStatus,
    DocumentType,
    IncomeClassification,
    PaymentMethod,
    VatCategory,
)

Row = Mapping[str, Any]

DOCUMENT_COLUMNS = (
    "id",
    "document_type",
    "series",
    "fiscal_year",
    "sequence_number",
    "document_number",
    "issue_date",
    "due_date",
    "delivery_date",
    "counterparty_id",
    "related_document_id",
    "currency",
    "exchange_rate",
    "payment_method",
    "payment_terms",
    "subtotal",
    "discount_amount",
    "vat_amount",
    "withholding_rate",
    "withholding_amount",
    "other_charges",
    "total",
    "paid_amount",
    "balance_due",
    "status",
    "compliance_status",
    "compliance_mark",
    "compliance_uid",
    "compliance_submitted_at",
    "compliance_cancellation_mark",
    "compliance_errors",
    "customer_notes",
    "internal_notes",
    "created_by",
    "updated_by",
    "locked_by",
    "locked_at",
    "sent_at",
    "viewed_at",
    "emailed_to",
    "created_at",
    "updated_at",
    "deleted_at",
    "version",
)

LINE_COLUMNS = (
    "id",
    "document_id",
    "line_number",
    "item_code",
    "description",
    "quantity",
    "unit",
    "unit_price",
    "discount_percent",
    "discount_amount",
    "vat_category",
    "vat_rate",
    "vat_exemption_reason",
    "income_classification",
    "notes",
    "net_amount",
    "vat_amount",
    "total_amount",
)

PAYMENT_COLUMNS = (
    "id",
    "document_id",
    "amount",
    "method",
    "payment_date",
    "notes",
    "recorded_by",
    "created_at",
)

COUNTERPARTY_COLUMNS = (
    "id",
    "name",
    "vat_number",
    "country",
    "street",
    "street_number",
    "postal_code",
    "city",
    "email",
    "is_active",
    "created_at",
    "updated_at",
)

AUDIT_COLUMNS = (
    "id",
    "entity_type",
    "entity_id",
    "action",
    "actor",
    "timestamp",
    "old_values",
    "new_values",
    "outcome",
    "change_summary",
)

# Header columns rewritten by a full document update.
DOCUMENT_UPDATE_COLUMNS = tuple(
    c for c in DOCUMENT_COLUMNS if c not in ("id", "created_at", "version")
)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _enum(value: Any) -> str | None:
    return value.value if value is not None else None


def _to_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _to_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _to_uuid(value: Any) -> UUID | None:
    return UUID(str(value)) if value is not None else None


def _to_decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def compliance_params(record: ComplianceRecord) -> dict[str, Any]:
    return {
        "compliance_status": record.status.value,
        "compliance_mark": record.mark,
        "compliance_uid": record.uid,
        "compliance_submitted_at": _iso(record.submitted_at),
        "compliance_cancellation_mark": record.cancellation_mark,
        "compliance_errors": json.dumps(record.errors) if record.errors else None,
    }


def document_params(document: Document) -> dict[str, Any]:
    params = {
        "id": str(document.id),
        "document_type": document.document_type.value,
        "series": document.series,
        "fiscal_year": document.fiscal_year,
        "sequence_number": document.sequence_number,
        "document_number": document.document_number,
        "issue_date": _iso(document.issue_date),
        "due_date": _iso(document.due_date),
        "delivery_date": _iso(document.delivery_date),
        "counterparty_id": str(document.counterparty_id),
        "related_document_id": _str(document.related_document_id),
        "currency": document.currency,
        "exchange_rate": str(document.exchange_rate),
        "payment_method": _enum(document.payment_method),
        "payment_terms": document.payment_terms,
        "subtotal": str(document.subtotal),
        "discount_amount": str(document.discount_amount),
        "vat_amount": str(document.vat_amount),
        "withholding_rate": str(document.withholding_rate),
        "withholding_amount": str(document.withholding_amount),
        "other_charges": str(document.other_charges),
        "total": str(document.total),
        "paid_amount": str(document.paid_amount),
        "balance_due": str(document.balance_due),
        "status": document.status.value,
        "customer_notes": document.customer_notes,
        "internal_notes": document.internal_notes,
        "created_by": document.created_by,
        "updated_by": document.updated_by,
        "locked_by": document.locked_by,
        "locked_at": _iso(document.locked_at),
        "sent_at": _iso(document.sent_at),
        "viewed_at": _iso(document.viewed_at),
        "emailed_to": document.emailed_to,
        "created_at": _iso(document.created_at),
        "updated_at": _iso(document.updated_at),
        "deleted_at": _iso(document.deleted_at),
        "version": document.version,
    }
    params.update(compliance_params(document.compliance))
    return params


def line_params(document_id: UUID, line: LineItem) -> dict[str, Any]:
    return {
        "id": str(line.id),
        "document_id": str(document_id),
        "line_number": line.line_number,
        "item_code": line.item_code,
        "description": line.description,
        "quantity": str(line.quantity),
        "unit": line.unit,
        "unit_price": str(line.unit_price),
        "discount_percent": str(line.discount_percent),
        "discount_amount": str(line.discount_amount),
        "vat_category": line.vat_category.value,
        "vat_rate": str(line.vat_rate),
        "vat_exemption_reason": line.vat_exemption_reason,
        "income_classification": _enum(line.income_classification),
        "notes": line.notes,
        "net_amount": str(line.net_amount),
        "vat_amount": str(line.vat_amount),
        "total_amount": str(line.total_amount),
    }


def payment_params(payment: Payment) -> dict[str, Any]:
    return {
        "id": str(payment.id),
        "document_id": str(payment.document_id),
        "amount": str(payment.amount),
        "method": _enum(payment.method),
        "payment_date": _iso(payment.payment_date),
        "notes": payment.notes,
        "recorded_by": payment.recorded_by,
        "created_at": _iso(payment.created_at),
    }


def counterparty_params(counterparty: Counterparty) -> dict[str, Any]:
    return {
        "id": str(counterparty.id),
        "name": counterparty.name,
        "vat_number": counterparty.vat_number,
        "country": counterparty.country,
        "street": counterparty.street,
        "street_number": counterparty.street_number,
        "postal_code": counterparty.postal_code,
        "city": counterparty.city,
        "email": counterparty.email,
        "is_active": counterparty.is_active,
        "created_at": _iso(counterparty.created_at),
        "updated_at": _iso(counterparty.updated_at),
    }


def audit_params(entry: AuditEntry) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "entity_type": entry.entity_type.value,
        "entity_id": str(entry.entity_id),
        "action": entry.action.value,
        "actor": entry.actor,
        "timestamp": _iso(entry.timestamp),
        "old_values": json.dumps(entry.old_values, default=str)
        if entry.old_values is not None
        else None,
        "new_values": json.dumps(entry.new_values, default=str)
        if entry.new_values is not None
        else None,
        "outcome": entry.outcome.value,
        "change_summary": entry.change_summary,
    }


def row_to_line(row: Row) -> LineItem:
    income = row["income_classification"]
    return LineItem(
        id=UUID(row["id"]),
        line_number=row["line_number"],
        item_code=row["item_code"],
        description=row["description"],
        quantity=_to_decimal(row["quantity"]),
        unit=row["unit"],
        unit_price=_to_decimal(row["unit_price"]),
        discount_percent=_to_decimal(row["discount_percent"]),
        discount_amount=_to_decimal(row["discount_amount"]),
        vat_category=VatCategory(row["vat_category"]),
        vat_exemption_reason=row["vat_exemption_reason"],
        income_classification=IncomeClassification(income) if income else None,
        notes=row["notes"],
        net_amount=_to_decimal(row["net_amount"]),
        vat_amount=_to_decimal(row["vat_amount"]),
        total_amount=_to_decimal(row["total_amount"]),
    )


def row_to_compliance(row: Row) -> ComplianceRecord:
    errors = row["compliance_errors"]
    return ComplianceRecord(
        status=ComplianceStatus(row["compliance_status"]),
        mark=row["compliance_mark"],
        uid=row["compliance_uid"],
        submitted_at=_to_datetime(row["compliance_submitted_at"]),
        cancellation_mark=row["compliance_cancellation_mark"],
        errors=json.loads(errors) if errors else [],
    )


def row_to_document(row: Row, lines: list[LineItem]) -> Document:
    payment_method = row["payment_method"]
    return Document(
        id=UUID(row["id"]),
        document_type=DocumentType(row["document_type"]),
        series=row["series"],
        fiscal_year=row["fiscal_year"],
        sequence_number=row["sequence_number"],
        issue_date=_to_date(row["issue_date"]),
        due_date=_to_date(row["due_date"]),
        delivery_date=_to_date(row["delivery_date"]),
        counterparty_id=UUID(row["counterparty_id"]),
        related_document_id=_to_uuid(row["related_document_id"]),
        currency=row["currency"],
        exchange_rate=_to_decimal(row["exchange_rate"]),
        payment_method=PaymentMethod(payment_method) if payment_method else None,
        payment_terms=row["payment_terms"],
        lines=lines,
        subtotal=_to_decimal(row["subtotal"]),
        discount_amount=_to_decimal(row["discount_amount"]),
        vat_amount=_to_decimal(row["vat_amount"]),
        withholding_rate=_to_decimal(row["withholding_rate"]),
        withholding_amount=_to_decimal(row["withholding_amount"]),
        other_charges=_to_decimal(row["other_charges"]),
        total=_to_decimal(row["total"]),
        paid_amount=_to_decimal(row["paid_amount"]),
        balance_due=_to_decimal(row["balance_due"]),
        status=DocumentStatus(row["status"]),
        compliance=row_to_compliance(row),
        customer_notes=row["customer_notes"],
        internal_notes=row["internal_notes"],
        created_by=row["created_by"],
        updated_by=row["updated_by"],
        locked_by=row["locked_by"],
        locked_at=_to_datetime(row["locked_at"]),
        sent_at=_to_datetime(row["sent_at"]),
        viewed_at=_to_datetime(row["viewed_at"]),
        emailed_to=row["emailed_to"],
        created_at=_to_datetime(row["created_at"]),
        updated_at=_to_datetime(row["updated_at"]),
        deleted_at=_to_datetime(row["deleted_at"]),
        version=row["version"],
    )


def row_to_payment(row: Row) -> Payment:
    method = row["method"]
    return Payment(
        id=UUID(row["id"]),
        document_id=UUID(row["document_id"]),
        amount=_to_decimal(row["amount"]),
        method=PaymentMethod(method) if method else None,
        payment_date=_to_date(row["payment_date"]),
        notes=row["notes"],
        recorded_by=row["recorded_by"],
        created_at=_to_datetime(row["created_at"]),
    )


def row_to_counterparty(row: Row) -> Counterparty:
    return Counterparty(
        id=UUID(row["id"]),
        name=row["name"],
        vat_number=row["vat_number"],
        country=row["country"],
        street=row["street"],
        street_number=row["street_number"],
        postal_code=row["postal_code"],
        city=row["city"],
        email=row["email"],
        is_active=bool(row["is_active"]),
        created_at=_to_datetime(row["created_at"]),
        updated_at=_to_datetime(row["updated_at"]),
    )


def row_to_audit_entry(row: Row) -> AuditEntry:
    old_values = row["old_values"]
    new_values = row["new_values"]
    return AuditEntry(
        id=UUID(row["id"]),
        entity_type=AuditEntityType(row["entity_type"]),
        entity_id=UUID(row["entity_id"]),
        action=AuditAction(row["action"]),
        actor=row["actor"],
        timestamp=_to_datetime(row["timestamp"]),
        old_values=json.loads(old_values) if old_values else None,
        new_values=json.loads(new_values) if new_values else None,
        outcome=AuditOutcome(row["outcome"]),
        change_summary=row["change_summary"],
    )
