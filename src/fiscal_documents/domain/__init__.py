from fiscal_documents.domain.audit import (
    AuditAction,
    AuditEntityType,
    AuditEntry,
    AuditLogSummary,
    AuditOutcome,
)
from fiscal_documents.domain.calculator import (
    DocumentTotals,
    LineAmounts,
    calculate_line,
    calculate_totals,
    compute_line_amounts,
    recompute_document,
)
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import (
    ComplianceRecord,
    Document,
    LineItem,
    Payment,
    format_document_number,
)
from fiscal_documents.domain.lifecycle import effective_status, is_editable
from fiscal_documents.domain.value_objects import (
    ComplianceStatus,
    Currency,
    DocumentStatus,
    DocumentType,
    IncomeClassification,
    PaymentMethod,
    VatCategory,
)

__all__ = [
    "AuditAction",
    "AuditEntityType",
    "AuditEntry",
    "AuditLogSummary",
    "AuditOutcome",
    "ComplianceRecord",
    "ComplianceStatus",
    "Counterparty",
    "Currency",
    "Document",
    "DocumentStatus",
    "DocumentTotals",
    "DocumentType",
    "IncomeClassification",
    "LineAmounts",
    "LineItem",
    "Payment",
    "PaymentMethod",
    "VatCategory",
    "calculate_line",
    "calculate_totals",
    "compute_line_amounts",
    "effective_status",
    "format_document_number",
    "is_editable",
    "recompute_document",
]
