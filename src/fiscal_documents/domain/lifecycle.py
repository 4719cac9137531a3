"""Document lifecycle state machine and edit-lock rules."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

from fiscal_documents.domain.documents import Document
from fiscal_documents.domain.value_objects import (
    ZERO,
    ComplianceStatus,
    DocumentStatus,
    round_money,
    to_decimal,
)
from fiscal_documents.exceptions import (
    ComplianceCancellationRequiredError,
    ConflictError,
    DocumentLockedError,
    DocumentNotEditableError,
    InvalidTransitionError,
    ValidationError,
)

EDITABLE_STATUSES = frozenset({DocumentStatus.DRAFT, DocumentStatus.PENDING})

# action -> statuses it may be applied from
ALLOWED_FROM: dict[str, frozenset[DocumentStatus]] = {
    "finalize": frozenset({DocumentStatus.DRAFT}),
    "send": frozenset(
        {
            DocumentStatus.PENDING,
            DocumentStatus.SENT,
            DocumentStatus.VIEWED,
            DocumentStatus.PARTIAL,
            DocumentStatus.OVERDUE,
        }
    ),
    "mark_viewed": frozenset({DocumentStatus.SENT}),
    "record_payment": frozenset(
        {
            DocumentStatus.DRAFT,
            DocumentStatus.PAID,
            DocumentStatus.PENDING,
            DocumentStatus.SENT,
            DocumentStatus.VIEWED,
            DocumentStatus.PARTIAL,
            DocumentStatus.OVERDUE,
        }
    ),
    "cancel": frozenset(
        {
            DocumentStatus.DRAFT,
            DocumentStatus.PENDING,
            DocumentStatus.SENT,
            DocumentStatus.VIEWED,
            DocumentStatus.PARTIAL,
            DocumentStatus.OVERDUE,
        }
    ),
    "delete": frozenset({DocumentStatus.DRAFT}),
}


def _utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_transition(document: Document, action: str) -> None:
    if document.status not in ALLOWED_FROM[action]:
        raise InvalidTransitionError(document.id, document.status.value, action)


def _content_block_reason(document: Document) -> str | None:
    if document.is_deleted:
        return "document is deleted"
    if document.status not in EDITABLE_STATUSES:
        return f"status is '{document.status.value}'"
    if document.compliance.has_mark:
        return f"document carries compliance mark {document.compliance.mark}"
    if document.compliance.status == ComplianceStatus.PENDING:
        return "a compliance submission is in progress"
    if document.compliance.is_certified:
        return f"compliance status is '{document.compliance.status.value}'"
    return None


def edit_block_reason(document: Document, actor: str | None) -> str | None:
    """Return why ``actor`` may not edit ``document``, or None if they may."""
    reason = _content_block_reason(document)
    if reason is None and document.locked_by not in (None, actor):
        reason = f"locked by {document.locked_by}"
    return reason


def is_editable(document: Document, actor: str | None = None) -> bool:
    return edit_block_reason(document, actor) is None


def ensure_editable(document: Document, actor: str | None) -> None:
    reason = _content_block_reason(document)
    if reason is not None:
        raise DocumentNotEditableError(document.id, reason)
    if document.locked_by is not None and document.locked_by != actor:
        raise DocumentLockedError(document.id, document.locked_by)


def effective_status(document: Document, today: date | None = None) -> DocumentStatus:
    """Stored status, or ``overdue`` once an open balance is past its due date."""
    today = today or date.today()
    if (
        document.status
        not in (DocumentStatus.DRAFT, DocumentStatus.PAID, DocumentStatus.CANCELLED)
        and document.due_date is not None
        and document.due_date < today
        and document.balance_due > 0
    ):
        return DocumentStatus.OVERDUE
    return document.status


def apply_finalize(document: Document, actor: str | None) -> None:
    ensure_transition(document, "finalize")
    ensure_editable(document, actor)
    if not document.lines:
        raise ValidationError(
            "A document needs at least one line to be finalized", field="lines"
        )
    document.status = DocumentStatus.PENDING
    document.touch(actor)


def apply_send(
    document: Document, emailed_to: str | None, actor: str | None
) -> None:
    if document.status == DocumentStatus.DRAFT:
        raise InvalidTransitionError(document.id, document.status.value, "send")
    ensure_transition(document, "send")
    now = _utc_now()
    document.sent_at = now
    if emailed_to:
        document.emailed_to = emailed_to
    if document.status == DocumentStatus.PENDING:
        document.status = DocumentStatus.SENT
    document.touch(actor)


def apply_mark_viewed(document: Document, actor: str | None) -> None:
    ensure_transition(document, "mark_viewed")
    document.viewed_at = _utc_now()
    document.status = DocumentStatus.VIEWED
    document.touch(actor)


def apply_payment(
    document: Document, amount: Decimal, actor: str | None
) -> Decimal:
    """Apply a payment to the header and return the rounded amount."""
    ensure_transition(document, "record_payment")
    amount = round_money(to_decimal(amount, "amount"))
    if amount <= ZERO:
        raise ValidationError("Payment amount must be positive", field="amount")
    if amount > document.balance_due:
        raise ValidationError(
            f"Payment {amount} exceeds balance due {document.balance_due}",
            field="amount",
        )

    document.paid_amount = round_money(document.paid_amount + amount)
    document.balance_due = round_money(document.total - document.paid_amount)
    if document.balance_due == ZERO:
        document.status = DocumentStatus.PAID
    else:
        document.status = DocumentStatus.PARTIAL
    document.touch(actor)
    return amount


def apply_cancel(document: Document, actor: str | None) -> None:
    if document.compliance.is_certified:
        raise ComplianceCancellationRequiredError(
            document.id, document.compliance.mark
        )
    if document.compliance.status == ComplianceStatus.PENDING:
        raise ConflictError(
            f"Document {document.id} has a compliance submission in progress",
            context={"document_id": str(document.id)},
        )
    ensure_transition(document, "cancel")
    document.status = DocumentStatus.CANCELLED
    document.touch(actor)


def apply_lock(document: Document, actor: str) -> None:
    if document.locked_by is not None and document.locked_by != actor:
        raise DocumentLockedError(document.id, document.locked_by)
    document.locked_by = actor
    document.locked_at = _utc_now()
    document.touch(actor)


def apply_unlock(document: Document, actor: str) -> None:
    if document.locked_by is None:
        return
    if document.locked_by != actor:
        raise DocumentLockedError(document.id, document.locked_by)
    document.locked_by = None
    document.locked_at = None
    document.touch(actor)


def ensure_deletable(document: Document) -> None:
    ensure_transition(document, "delete")
    if document.compliance.has_mark:
        raise DocumentNotEditableError(
            document.id, f"document carries compliance mark {document.compliance.mark}"
        )
