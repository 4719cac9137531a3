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
    PaymentMethod,
    VatCategory,
)

__all__ = [
    "ComplianceRecord",
    "ComplianceStatus",
    "Counterparty",
    "Document",
    "DocumentStatus",
    "DocumentType",
    "LineItem",
    "Payment",
    "PaymentMethod",
    "VatCategory",
]

__version__ = "0.1.0"
