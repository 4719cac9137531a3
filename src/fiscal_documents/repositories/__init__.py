from fiscal_documents.repositories.interfaces import (
    AuditRepository,
    CounterpartyRepository,
    Database,
    DocumentFilter,
    DocumentRepository,
)
from fiscal_documents.repositories.sqlite import (
    SQLiteAuditRepository,
    SQLiteCounterpartyRepository,
    SQLiteDatabase,
    SQLiteDocumentRepository,
)

__all__ = [
    "AuditRepository",
    "CounterpartyRepository",
    "Database",
    "DocumentFilter",
    "DocumentRepository",
    "SQLiteAuditRepository",
    "SQLiteCounterpartyRepository",
    "SQLiteDatabase",
    "SQLiteDocumentRepository",
]
