from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from fiscal_documents.domain.audit import (
    AuditAction,
    AuditEntityType,
    AuditEntry,
    AuditLogSummary,
)
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import ComplianceRecord, Document, Payment
from fiscal_documents.domain.value_objects import (
    ComplianceStatus,
    DocumentStatus,
    DocumentType,
)


@dataclass
class DocumentFilter:
    """Criteria for listing documents. Empty collections mean "any"."""

    document_types: Iterable[DocumentType] = field(default_factory=tuple)
    statuses: Iterable[DocumentStatus] = field(default_factory=tuple)
    exclude_statuses: Iterable[DocumentStatus] = field(default_factory=tuple)
    compliance_statuses: Iterable[ComplianceStatus] = field(default_factory=tuple)
    counterparty_id: UUID | None = None
    series: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    include_deleted: bool = False
    limit: int = 100
    offset: int = 0


class Database(ABC):
    """Connection owner shared by the repositories of one store."""

    @abstractmethod
    def get_connection(self) -> Any:
        pass

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Re-entrant write transaction; only the outermost block commits."""

    @abstractmethod
    def close(self) -> None:
        pass


class CounterpartyRepository(ABC):
    @abstractmethod
    def add(self, counterparty: Counterparty) -> None:
        pass

    @abstractmethod
    def get(self, counterparty_id: UUID) -> Counterparty | None:
        pass

    @abstractmethod
    def get_by_vat_number(self, vat_number: str) -> Counterparty | None:
        pass

    @abstractmethod
    def list_all(self, active_only: bool = False) -> Iterable[Counterparty]:
        pass

    @abstractmethod
    def update(self, counterparty: Counterparty) -> None:
        pass


class DocumentRepository(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        pass

    @abstractmethod
    def add(self, document: Document) -> None:
        """Insert header and lines. Raises DuplicateNumberError on a taken number."""

    @abstractmethod
    def get(self, document_id: UUID, include_deleted: bool = False) -> Document | None:
        pass

    @abstractmethod
    def update(self, document: Document) -> None:
        """Persist header and lines if ``document.version`` is still current.

        Bumps ``document.version`` on success and raises
        ConcurrentModificationError otherwise.
        """

    @abstractmethod
    def update_compliance(
        self,
        document_id: UUID,
        record: ComplianceRecord,
        expected_status: ComplianceStatus,
        expected_version: int | None = None,
    ) -> bool:
        """Compare-and-set the compliance record. Returns False if it lost the race.

        With ``expected_version`` the write also fails when the document
        changed in any other way since it was read.
        """

    @abstractmethod
    def soft_delete(self, document: Document) -> None:
        pass

    @abstractmethod
    def list_documents(self, criteria: DocumentFilter) -> list[Document]:
        pass

    @abstractmethod
    def lock_numbering_scope(
        self, document_type: DocumentType, series: str, fiscal_year: int
    ) -> None:
        """Serialize number allocation for the scope until the transaction ends."""

    @abstractmethod
    def max_sequence_number(
        self, document_type: DocumentType, series: str, fiscal_year: int
    ) -> int:
        """Highest number ever used in the scope, deleted documents included."""

    @abstractmethod
    def add_payment(self, payment: Payment) -> None:
        pass

    @abstractmethod
    def list_payments(self, document_id: UUID) -> list[Payment]:
        pass

    @abstractmethod
    def compliance_totals(self) -> dict[ComplianceStatus, tuple[int, Decimal]]:
        """Count and summed total of live, non-draft documents per compliance status."""


class AuditRepository(ABC):
    @abstractmethod
    def add(self, entry: AuditEntry) -> None:
        pass

    @abstractmethod
    def get(self, entry_id: UUID) -> AuditEntry | None:
        pass

    @abstractmethod
    def query(
        self,
        entity_type: AuditEntityType | None = None,
        entity_id: UUID | None = None,
        actor: str | None = None,
        action: AuditAction | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditEntry]:
        pass

    @abstractmethod
    def summary(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> AuditLogSummary:
        pass

