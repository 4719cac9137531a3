"""Sequential document numbering per (document type, series, fiscal year)."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

from fiscal_documents.domain.documents import Document, format_document_number
from fiscal_documents.domain.value_objects import DocumentType
from fiscal_documents.exceptions import ConflictError, DuplicateNumberError
from fiscal_documents.logging_config import get_logger
from fiscal_documents.repositories.interfaces import DocumentRepository

logger = get_logger(__name__)


class NumberingService:
    """Allocates the next number of a scope inside the saving transaction.

    The highest number ever used in the scope (soft-deleted documents
    included) is read under the repository's scope lock, so numbers are
    never reused. Gaps are tolerated. Should two writers still collide on
    the unique index, the whole save is retried with a fresh number.
    """

    def __init__(self, repository: DocumentRepository, max_attempts: int = 5) -> None:
        self._repository = repository
        self._max_attempts = max_attempts

    @staticmethod
    def format_number(series: str, sequence_number: int) -> str:
        return format_document_number(series, sequence_number)

    def next_number(
        self,
        document_type: DocumentType,
        series: str,
        reference_date: date | None = None,
    ) -> int:
        """Next free number of the scope.

        Outside a caller's transaction this is only a preview; the number
        is reserved by the transaction that inserts the document.
        """
        fiscal_year = (reference_date or date.today()).year
        with self._repository.transaction():
            self._repository.lock_numbering_scope(document_type, series, fiscal_year)
            return (
                self._repository.max_sequence_number(document_type, series, fiscal_year)
                + 1
            )

    def assign(self, document: Document) -> int:
        """Give ``document`` the next number of its scope. Call inside a transaction."""
        number = self.next_number(
            document.document_type, document.series, document.issue_date
        )
        document.assign_number(number)
        return number

    def allocate_and_save(
        self, document: Document, save: Callable[[], None]
    ) -> Document:
        """Number ``document`` (if needed) and run ``save`` in one transaction."""
        needs_number = not document.has_number
        for attempt in range(1, self._max_attempts + 1):
            try:
                with self._repository.transaction():
                    if needs_number:
                        self.assign(document)
                    save()
            except DuplicateNumberError:
                logger.warning(
                    "document_number_conflict",
                    document_id=str(document.id),
                    document_type=document.document_type.value,
                    series=document.series,
                    sequence_number=document.sequence_number,
                    attempt=attempt,
                )
                if not needs_number:
                    raise
                document.release_number()
                continue

            if needs_number:
                logger.info(
                    "document_number_assigned",
                    document_id=str(document.id),
                    document_number=document.document_number,
                    attempt=attempt,
                )
            return document

        raise ConflictError(
            f"Could not allocate a number for {document.document_type.value}/"
            f"{document.series} after {self._max_attempts} attempts",
            context={
                "document_id": str(document.id),
                "document_type": document.document_type.value,
                "series": document.series,
                "attempts": self._max_attempts,
            },
        )
