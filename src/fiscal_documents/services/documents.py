"""Document aggregate service: creation, edits and lifecycle transitions."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from fiscal_documents.config import Settings, get_settings
from fiscal_documents.domain.audit import AuditAction, AuditEntityType
from fiscal_documents.domain.calculator import recompute_document
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import Document, LineItem, Payment
from fiscal_documents.domain.lifecycle import (
    apply_cancel,
    apply_finalize,
    apply_lock,
    apply_mark_viewed,
    apply_payment,
    apply_send,
    apply_unlock,
    effective_status,
    ensure_deletable,
    ensure_editable,
)
from fiscal_documents.domain.value_objects import (
    Currency,
    DocumentStatus,
    PaymentMethod,
    to_decimal,
)
from fiscal_documents.exceptions import (
    ConcurrentModificationError,
    CounterpartyNotFoundError,
    DocumentNotFoundError,
    LineItemNotFoundError,
    ValidationError,
)
from fiscal_documents.logging_config import get_logger
from fiscal_documents.repositories.interfaces import (
    CounterpartyRepository,
    DocumentFilter,
    DocumentRepository,
)
from fiscal_documents.services.audit import AuditService
from fiscal_documents.services.interfaces import DocumentRenderer
from fiscal_documents.services.numbering import NumberingService

logger = get_logger(__name__)

HEADER_FIELDS = frozenset(
    {
        "series",
        "issue_date",
        "due_date",
        "delivery_date",
        "counterparty_id",
        "related_document_id",
        "currency",
        "exchange_rate",
        "payment_method",
        "payment_terms",
        "withholding_rate",
        "other_charges",
        "customer_notes",
        "internal_notes",
    }
)

LINE_FIELDS = frozenset(
    {
        "description",
        "quantity",
        "unit_price",
        "item_code",
        "unit",
        "vat_category",
        "discount_percent",
        "discount_amount",
        "vat_exemption_reason",
        "income_classification",
        "notes",
    }
)

MAX_SERIES_LENGTH = 10


def _coerce_date(value: date | str | None, field: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(
            f"{field} must be an ISO date, got {value!r}", field=field
        ) from None


def _coerce_uuid(value: UUID | str | None, field: str) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be a UUID", field=field) from None


def _coerce_payment_method(value: PaymentMethod | str | None) -> PaymentMethod | None:
    if value is None:
        return None
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(
            f"Unknown payment method: {value!r}", field="payment_method"
        ) from None


class DocumentService:
    """Orchestrates the document aggregate.

    Every change follows the same explicit sequence: load, check the
    version and edit rules, apply the change, recompute totals, persist
    under the optimistic version check, then record the audit entry.
    """

    def __init__(
        self,
        documents: DocumentRepository,
        counterparties: CounterpartyRepository,
        numbering: NumberingService,
        audit: AuditService,
        renderer: DocumentRenderer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._documents = documents
        self._counterparties = counterparties
        self._numbering = numbering
        self._audit = audit
        self._renderer = renderer
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, document_id: UUID) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def list_documents(self, criteria: DocumentFilter | None = None) -> list[Document]:
        return self._documents.list_documents(criteria or DocumentFilter())

    def list_payments(self, document_id: UUID) -> list[Payment]:
        self.get(document_id)
        return self._documents.list_payments(document_id)

    def effective_status(
        self, document_id: UUID, today: date | None = None
    ) -> DocumentStatus:
        """Stored status with ``overdue`` derived for the given day."""
        return effective_status(self.get(document_id), today)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        document: Document,
        actor: str | None = None,
        lines: Iterable[LineItem] | None = None,
        assign_number: bool = True,
    ) -> Document:
        """Validate, number, total and persist a new draft document.

        Args:
            document: The header, optionally carrying its lines already.
            actor: Who is creating the document.
            lines: Extra lines appended to ``document.lines``.
            assign_number: Number the draft now. When False the number is
                allocated on finalize.

        Returns:
            The persisted document.

        Raises:
            ValidationError: If the header or a line is invalid.
            CounterpartyNotFoundError: If the counterparty does not exist.
            ConflictError: If no number could be allocated.
        """
        if lines is not None:
            document.lines.extend(lines)
        if document.status != DocumentStatus.DRAFT:
            raise ValidationError("New documents start as drafts", field="status")
        if document.has_number:
            raise ValidationError(
                "Document numbers are allocated by the system", field="sequence_number"
            )
        if not document.series:
            document.series = self._settings.default_series
        self._validate_header(document)
        self._require_counterparty(document.counterparty_id)
        for line in document.lines:
            self._validate_line(line)

        document.created_by = actor
        document.updated_by = actor
        recompute_document(document)

        if assign_number:
            self._numbering.allocate_and_save(
                document, lambda: self._documents.add(document)
            )
        else:
            self._documents.add(document)

        logger.info(
            "document_created",
            document_id=str(document.id),
            document_type=document.document_type.value,
            document_number=document.document_number,
            total=str(document.total),
            actor=actor,
        )
        self._audit.record(
            AuditEntityType.DOCUMENT,
            document.id,
            actor,
            AuditAction.CREATE,
            after=document.snapshot(),
        )
        return document

    def duplicate(self, document_id: UUID, actor: str | None = None) -> Document:
        """Copy a document into a new unnumbered draft that points back to it."""
        original = self.get(document_id)
        today = date.today()
        due_date = None
        if original.due_date is not None:
            due_date = today + (original.due_date - original.issue_date)

        copy = Document(
            document_type=original.document_type,
            counterparty_id=original.counterparty_id,
            issue_date=today,
            series=original.series,
            due_date=due_date,
            related_document_id=original.id,
            currency=original.currency,
            exchange_rate=original.exchange_rate,
            payment_method=original.payment_method,
            payment_terms=original.payment_terms,
            withholding_rate=original.withholding_rate,
            other_charges=original.other_charges,
            customer_notes=original.customer_notes,
            internal_notes=original.internal_notes,
            lines=[
                LineItem(
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    item_code=line.item_code,
                    unit=line.unit,
                    vat_category=line.vat_category,
                    discount_percent=line.discount_percent,
                    discount_amount=Decimal("0")
                    if line.discount_percent > 0
                    else line.discount_amount,
                    vat_exemption_reason=line.vat_exemption_reason,
                    income_classification=line.income_classification,
                    notes=line.notes,
                )
                for line in original.lines
            ],
        )
        self.create(copy, actor=actor, assign_number=False)
        self._audit.record(
            AuditEntityType.DOCUMENT,
            original.id,
            actor,
            AuditAction.DUPLICATE,
            after={"duplicate_id": str(copy.id)},
        )
        return copy

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update_header(
        self,
        document_id: UUID,
        changes: dict[str, Any],
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> Document:
        unknown = sorted(set(changes) - HEADER_FIELDS)
        if unknown:
            raise ValidationError(
                f"Cannot change header field(s): {', '.join(unknown)}", field=unknown[0]
            )

        def apply(document: Document) -> None:
            for name, value in changes.items():
                setattr(document, name, self._coerce_header_value(name, value))
            if document.has_number:
                if "series" in changes:
                    raise ValidationError(
                        "The series of a numbered document cannot change",
                        field="series",
                    )
                if document.issue_date.year != document.fiscal_year:
                    raise ValidationError(
                        "The issue date of a numbered document must stay in "
                        f"fiscal year {document.fiscal_year}",
                        field="issue_date",
                    )
            self._validate_header(document)
            if "counterparty_id" in changes:
                self._require_counterparty(document.counterparty_id)

        return self._mutate(
            document_id, actor, expected_version, apply, "update header"
        )

    def add_line(
        self,
        document_id: UUID,
        line: LineItem,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> Document:
        self._validate_line(line)

        def apply(document: Document) -> None:
            document.lines.append(line)

        return self._mutate(document_id, actor, expected_version, apply, "add line")

    def update_line(
        self,
        document_id: UUID,
        line_id: UUID,
        changes: dict[str, Any],
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> Document:
        unknown = sorted(set(changes) - LINE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Cannot change line field(s): {', '.join(unknown)}", field=unknown[0]
            )

        def apply(document: Document) -> None:
            for index, line in enumerate(document.lines):
                if line.id == line_id:
                    break
            else:
                raise LineItemNotFoundError(document.id, line_id)
            values = dict(changes)
            # The two discount forms are exclusive; setting one clears the other.
            if "discount_percent" in values and "discount_amount" not in values:
                values["discount_amount"] = Decimal("0")
            if "discount_amount" in values and "discount_percent" not in values:
                values["discount_percent"] = Decimal("0")
            updated = dataclasses.replace(line, **values)
            self._validate_line(updated)
            document.lines[index] = updated

        return self._mutate(
            document_id, actor, expected_version, apply, "update line"
        )

    def remove_line(
        self,
        document_id: UUID,
        line_id: UUID,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> Document:
        def apply(document: Document) -> None:
            line = document.get_line(line_id)
            if line is None:
                raise LineItemNotFoundError(document.id, line_id)
            document.lines.remove(line)

        return self._mutate(
            document_id, actor, expected_version, apply, "remove line"
        )

    def replace_lines(
        self,
        document_id: UUID,
        lines: Iterable[LineItem],
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> Document:
        new_lines = list(lines)
        for line in new_lines:
            self._validate_line(line)

        def apply(document: Document) -> None:
            document.lines = new_lines

        return self._mutate(
            document_id, actor, expected_version, apply, "replace lines"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def finalize(
        self,
        document_id: UUID,
        actor: str | None = None,
        expected_version: int | None = None,
    ) -> Document:
        """Move a draft to ``pending``, numbering it if it has no number yet."""
        document = self._load(document_id, expected_version)
        before = document.snapshot()
        apply_finalize(document, actor)
        recompute_document(document)
        if document.has_number:
            self._documents.update(document)
        else:
            self._numbering.allocate_and_save(
                document, lambda: self._documents.update(document)
            )
        self._after_change(document, before, actor, AuditAction.FINALIZE)
        return document

    def send(
        self,
        document_id: UUID,
        actor: str | None = None,
        emailed_to: str | None = None,
    ) -> bytes | None:
        """Mark the document as sent and return the rendered file, if any.

        The address defaults to the counterparty's email. Rendering runs
        before the state change is stored, so a renderer failure leaves the
        document untouched.
        """
        document = self.get(document_id)
        counterparty = self._require_counterparty(
            document.counterparty_id, active_only=False
        )
        before = document.snapshot()
        apply_send(document, emailed_to or counterparty.email, actor)
        content = None
        if self._renderer is not None:
            content = self._renderer.render(document, counterparty)
        self._documents.update(document)
        self._after_change(document, before, actor, AuditAction.SEND)
        return content

    def mark_viewed(self, document_id: UUID, actor: str | None = None) -> Document:
        document = self.get(document_id)
        before = document.snapshot()
        apply_mark_viewed(document, actor)
        self._documents.update(document)
        self._after_change(document, before, actor, AuditAction.VIEW)
        return document

    def record_payment(
        self,
        document_id: UUID,
        amount: Decimal | int | str,
        actor: str | None = None,
        method: PaymentMethod | str | None = None,
        payment_date: date | None = None,
        notes: str | None = None,
    ) -> Payment:
        """Apply a payment to the balance and store it as its own row.

        Raises:
            ValidationError: If the amount is not positive or exceeds the balance.
            InvalidTransitionError: If the document is cancelled.
        """
        document = self.get(document_id)
        before = document.snapshot()
        applied = apply_payment(document, to_decimal(amount, "amount"), actor)
        payment = Payment(
            document_id=document.id,
            amount=applied,
            method=_coerce_payment_method(method) or document.payment_method,
            payment_date=payment_date or date.today(),
            notes=notes,
            recorded_by=actor,
        )
        with self._documents.transaction():
            self._documents.update(document)
            self._documents.add_payment(payment)

        logger.info(
            "payment_recorded",
            document_id=str(document.id),
            payment_id=str(payment.id),
            amount=str(applied),
            balance_due=str(document.balance_due),
            status=document.status.value,
        )
        self._audit.record(
            AuditEntityType.DOCUMENT,
            document.id,
            actor,
            AuditAction.PAYMENT,
            before=before,
            after=document.snapshot(),
            summary=f"payment {applied} recorded",
        )
        return payment

    def cancel(self, document_id: UUID, actor: str | None = None) -> Document:
        """Cancel a document.

        Raises:
            ComplianceCancellationRequiredError: While the authority holds a
                live submission; cancel it through the compliance gateway first.
            ConflictError: While a submission is in flight.
        """
        document = self.get(document_id)
        before = document.snapshot()
        apply_cancel(document, actor)
        self._documents.update(document)
        self._after_change(document, before, actor, AuditAction.CANCEL)
        return document

    def lock(self, document_id: UUID, actor: str) -> Document:
        document = self.get(document_id)
        before = document.snapshot()
        apply_lock(document, actor)
        self._documents.update(document)
        self._after_change(document, before, actor, AuditAction.LOCK)
        return document

    def unlock(self, document_id: UUID, actor: str) -> Document:
        document = self.get(document_id)
        before = document.snapshot()
        apply_unlock(document, actor)
        self._documents.update(document)
        self._after_change(document, before, actor, AuditAction.UNLOCK)
        return document

    def delete(self, document_id: UUID, actor: str | None = None) -> None:
        """Soft-delete a draft. Its number, if any, stays reserved."""
        document = self.get(document_id)
        ensure_deletable(document)
        ensure_editable(document, actor)
        before = document.snapshot()
        document.touch(actor)
        self._documents.soft_delete(document)
        logger.info("document_deleted", document_id=str(document.id), actor=actor)
        self._audit.record(
            AuditEntityType.DOCUMENT,
            document.id,
            actor,
            AuditAction.DELETE,
            before=before,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, document_id: UUID, expected_version: int | None) -> Document:
        document = self.get(document_id)
        if expected_version is not None and document.version != expected_version:
            raise ConcurrentModificationError(document.id, expected_version)
        return document

    def _mutate(
        self,
        document_id: UUID,
        actor: str | None,
        expected_version: int | None,
        apply: Callable[[Document], None],
        description: str,
    ) -> Document:
        document = self._load(document_id, expected_version)
        ensure_editable(document, actor)
        before = document.snapshot()
        apply(document)
        recompute_document(document)
        document.touch(actor)
        self._documents.update(document)
        self._after_change(
            document, before, actor, AuditAction.UPDATE, summary=description
        )
        return document

    def _after_change(
        self,
        document: Document,
        before: dict[str, Any],
        actor: str | None,
        action: AuditAction,
        summary: str | None = None,
    ) -> None:
        logger.info(
            "document_changed",
            document_id=str(document.id),
            action=action.value,
            status=document.status.value,
            version=document.version,
            actor=actor,
        )
        self._audit.record(
            AuditEntityType.DOCUMENT,
            document.id,
            actor,
            action,
            before=before,
            after=document.snapshot(),
            summary=summary,
        )

    def _require_counterparty(
        self, counterparty_id: UUID, active_only: bool = True
    ) -> Counterparty:
        counterparty = self._counterparties.get(counterparty_id)
        if counterparty is None:
            raise CounterpartyNotFoundError(counterparty_id)
        if active_only and not counterparty.is_active:
            raise ValidationError(
                f"Counterparty {counterparty.name} is inactive", field="counterparty_id"
            )
        return counterparty

    def _coerce_header_value(self, name: str, value: Any) -> Any:
        if name in ("issue_date", "due_date", "delivery_date"):
            coerced = _coerce_date(value, name)
            if name == "issue_date" and coerced is None:
                raise ValidationError("issue_date is required", field=name)
            return coerced
        if name in ("counterparty_id", "related_document_id"):
            coerced = _coerce_uuid(value, name)
            if name == "counterparty_id" and coerced is None:
                raise ValidationError("counterparty_id is required", field=name)
            return coerced
        if name in ("exchange_rate", "withholding_rate", "other_charges"):
            return to_decimal(value, name)
        if name == "payment_method":
            return _coerce_payment_method(value)
        if name == "series":
            return str(value).strip().upper()
        if name == "currency":
            return str(value).upper()
        return value

    def _validate_header(self, document: Document) -> None:
        series = document.series
        if not series or len(series) > MAX_SERIES_LENGTH or not series.isalnum():
            raise ValidationError(
                f"Series must be 1-{MAX_SERIES_LENGTH} letters or digits, got {series!r}",
                field="series",
            )
        try:
            Currency(document.currency)
        except ValueError:
            raise ValidationError(
                f"Unsupported currency: {document.currency}", field="currency"
            ) from None
        if document.exchange_rate <= 0:
            raise ValidationError(
                "exchange_rate must be greater than zero", field="exchange_rate"
            )
        if document.due_date is not None and document.due_date < document.issue_date:
            raise ValidationError(
                "due_date cannot be before issue_date", field="due_date"
            )

    @staticmethod
    def _validate_line(line: LineItem) -> None:
        if not line.description or not line.description.strip():
            raise ValidationError("Line description is required", field="description")
