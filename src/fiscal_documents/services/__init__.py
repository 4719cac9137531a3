from fiscal_documents.services.audit import AuditService
from fiscal_documents.services.compliance import (
    BulkSubmissionResult,
    ComplianceGateway,
    ComplianceSummary,
    ConnectionCheck,
    StatusResult,
    SubmissionResult,
)
from fiscal_documents.services.counterparties import CounterpartyService
from fiscal_documents.services.documents import DocumentService
from fiscal_documents.services.interfaces import DocumentRenderer
from fiscal_documents.services.numbering import NumberingService

__all__ = [
    "AuditService",
    "BulkSubmissionResult",
    "ComplianceGateway",
    "ComplianceSummary",
    "ConnectionCheck",
    "CounterpartyService",
    "DocumentRenderer",
    "DocumentService",
    "NumberingService",
    "StatusResult",
    "SubmissionResult",
]
