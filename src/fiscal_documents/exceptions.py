"""Domain exception hierarchy for Fiscal Documents.

All domain-specific exceptions inherit from FiscalDocumentsError.
This allows catching all application errors with a single base class
while preserving specificity for individual error types.
"""

from typing import Any
from uuid import UUID


class FiscalDocumentsError(Exception):
    """Base exception for all Fiscal Documents errors.

    Includes an error_code and HTTP-style status_code for the API layer
    that wraps this package, plus free-form context.
    """

    error_code: str = "FD_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(FiscalDocumentsError):
    """Raised for malformed input. Names the offending field when known."""

    error_code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: str | None = None) -> None:
        context = {"field": field} if field else {}
        super().__init__(message, context=context)
        self.field = field


# =============================================================================
# Lookup Errors
# =============================================================================


class NotFoundError(FiscalDocumentsError):
    """Base exception for missing records."""

    error_code = "NOT_FOUND"
    status_code = 404


class DocumentNotFoundError(NotFoundError):
    """Raised when a document cannot be found."""

    error_code = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: UUID | str) -> None:
        super().__init__(
            f"Document not found: {document_id}",
            context={"document_id": str(document_id)},
        )


class LineItemNotFoundError(NotFoundError):
    """Raised when a line item is not part of the document."""

    error_code = "LINE_ITEM_NOT_FOUND"

    def __init__(self, document_id: UUID | str, line_id: UUID | str) -> None:
        super().__init__(
            f"Line item {line_id} not found on document {document_id}",
            context={"document_id": str(document_id), "line_id": str(line_id)},
        )


class CounterpartyNotFoundError(NotFoundError):
    """Raised when a counterparty cannot be found."""

    error_code = "COUNTERPARTY_NOT_FOUND"

    def __init__(self, counterparty_id: UUID | str) -> None:
        super().__init__(
            f"Counterparty not found: {counterparty_id}",
            context={"counterparty_id": str(counterparty_id)},
        )


# =============================================================================
# Conflict Errors
# =============================================================================


class ConflictError(FiscalDocumentsError):
    """Raised when concurrent activity prevents an operation.

    The caller should re-fetch the document and retry.
    """

    error_code = "CONFLICT"
    status_code = 409


class DuplicateNumberError(ConflictError):
    """Raised when a sequence number is already taken in its scope."""

    error_code = "DUPLICATE_NUMBER"

    def __init__(
        self, document_type: str, series: str, fiscal_year: int, sequence_number: int
    ) -> None:
        super().__init__(
            f"Number {sequence_number} already allocated for "
            f"{document_type}/{series}/{fiscal_year}",
            context={
                "document_type": document_type,
                "series": series,
                "fiscal_year": fiscal_year,
                "sequence_number": sequence_number,
            },
        )


class ConcurrentModificationError(ConflictError):
    """Raised when a document changed since it was read."""

    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, document_id: UUID | str, expected_version: int) -> None:
        super().__init__(
            f"Document {document_id} was modified concurrently "
            f"(expected version {expected_version})",
            context={
                "document_id": str(document_id),
                "expected_version": expected_version,
            },
        )


class DocumentLockedError(ConflictError):
    """Raised when another actor holds the edit lock."""

    error_code = "DOCUMENT_LOCKED"

    def __init__(self, document_id: UUID | str, locked_by: str) -> None:
        super().__init__(
            f"Document {document_id} is locked by {locked_by}",
            context={"document_id": str(document_id), "locked_by": locked_by},
        )


class DocumentNotEditableError(ConflictError):
    """Raised when an edit is attempted on a document that is no longer editable."""

    error_code = "DOCUMENT_NOT_EDITABLE"

    def __init__(self, document_id: UUID | str, reason: str) -> None:
        super().__init__(
            f"Document {document_id} cannot be edited: {reason}",
            context={"document_id": str(document_id), "reason": reason},
        )


class InvalidTransitionError(ConflictError):
    """Raised when a lifecycle transition is not allowed from the current status."""

    error_code = "INVALID_TRANSITION"

    def __init__(self, document_id: UUID | str, current: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} document {document_id} in status '{current}'",
            context={
                "document_id": str(document_id),
                "status": current,
                "action": action,
            },
        )


class ComplianceCancellationRequiredError(ConflictError):
    """Raised when a certified document is cancelled before its submission is."""

    error_code = "COMPLIANCE_CANCELLATION_REQUIRED"

    def __init__(self, document_id: UUID | str, mark: str | None) -> None:
        super().__init__(
            f"Document {document_id} has compliance mark {mark}; "
            "cancel the submission with the compliance gateway first",
            context={"document_id": str(document_id), "mark": mark},
        )


# =============================================================================
# Compliance Errors
# =============================================================================


class ComplianceError(FiscalDocumentsError):
    """Raised when the tax authority rejects a submission or cancellation."""

    error_code = "COMPLIANCE_REJECTED"
    status_code = 502

    def __init__(
        self,
        message: str,
        errors: list[dict[str, str]] | None = None,
        mark: str | None = None,
        document_id: UUID | str | None = None,
    ) -> None:
        self.errors = errors or []
        self.mark = mark
        context: dict[str, Any] = {"errors": self.errors}
        if mark:
            context["mark"] = mark
        if document_id:
            context["document_id"] = str(document_id)
        super().__init__(message, context=context)


# =============================================================================
# Infrastructure Errors
# =============================================================================


class PersistenceError(FiscalDocumentsError):
    """Raised when the store is unavailable or a write fails unexpectedly."""

    error_code = "PERSISTENCE_ERROR"
    status_code = 503


class ExternalServiceError(FiscalDocumentsError):
    """Raised when the compliance service cannot be reached or misbehaves."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(self, message: str, http_status: int | None = None) -> None:
        context = {"http_status": http_status} if http_status else {}
        super().__init__(message, context=context)
        self.http_status = http_status


class ExternalTimeoutError(ExternalServiceError):
    """Raised when the compliance call did not complete in time."""

    error_code = "EXTERNAL_TIMEOUT"
    status_code = 504

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(f"{operation} timed out after {timeout}s")
        self.context.update({"operation": operation, "timeout": timeout})
