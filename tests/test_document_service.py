"""Tests for the document aggregate service and its lifecycle."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fiscal_documents.domain.audit import AuditAction, AuditEntityType
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import ComplianceRecord, Document, LineItem
from fiscal_documents.domain.value_objects import (
    ComplianceStatus,
    DocumentStatus,
    DocumentType,
    PaymentMethod,
    VatCategory,
)
from fiscal_documents.exceptions import (
    ComplianceCancellationRequiredError,
    ConcurrentModificationError,
    ConflictError,
    CounterpartyNotFoundError,
    DocumentLockedError,
    DocumentNotEditableError,
    DocumentNotFoundError,
    InvalidTransitionError,
    LineItemNotFoundError,
    ValidationError,
)
from fiscal_documents.repositories.interfaces import DocumentFilter
from fiscal_documents.repositories.sqlite import SQLiteDocumentRepository
from fiscal_documents.services.audit import AuditService
from fiscal_documents.services.documents import DocumentService
from fiscal_documents.services.interfaces import DocumentRenderer


class FakeRenderer(DocumentRenderer):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.rendered: list[str | None] = []

    def render(self, document: Document, counterparty: Counterparty) -> bytes:
        if self.fail:
            raise RuntimeError("renderer unavailable")
        self.rendered.append(document.document_number)
        return f"{document.document_number} for {counterparty.name}".encode()


def _line(description: str = "Service", price: str = "100.00", **kwargs) -> LineItem:
    return LineItem(
        description=description,
        quantity=Decimal("1"),
        unit_price=Decimal(price),
        **kwargs,
    )


def _certify(repo: SQLiteDocumentRepository, document: Document, mark: str = "400001") -> None:
    repo.update_compliance(
        document.id,
        ComplianceRecord(status=ComplianceStatus.SUBMITTED, mark=mark, uid="UID1"),
        document.compliance.status,
    )


class TestCreate:
    def test_creates_numbered_draft_with_totals(self, draft_invoice: Document):
        assert draft_invoice.status == DocumentStatus.DRAFT
        assert draft_invoice.document_number == "A-000001"
        assert draft_invoice.subtotal == Decimal("35.00")
        assert draft_invoice.vat_amount == Decimal("7.85")
        assert draft_invoice.total == Decimal("42.85")
        assert draft_invoice.balance_due == Decimal("42.85")
        assert draft_invoice.created_by == "alice"

    def test_persists_header_and_lines(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        stored = document_service.get(draft_invoice.id)

        assert stored.total == Decimal("42.85")
        assert [line.line_number for line in stored.lines] == [1, 2]
        assert stored.lines[0].net_amount == Decimal("30.00")

    def test_fills_default_series(self, draft_invoice: Document):
        assert draft_invoice.series == "A"

    def test_can_defer_number(self, document_service: DocumentService, customer: Counterparty):
        document = document_service.create(
            Document(document_type=DocumentType.QUOTE, counterparty_id=customer.id),
            assign_number=False,
        )

        assert document.sequence_number is None
        assert document.document_number is None

    def test_accepts_lines_argument(
        self, document_service: DocumentService, customer: Counterparty
    ):
        document = document_service.create(
            Document(document_type=DocumentType.INVOICE, counterparty_id=customer.id),
            lines=[_line(), _line(price="50.00")],
        )

        assert document.subtotal == Decimal("150.00")

    def test_unknown_counterparty(self, document_service: DocumentService):
        with pytest.raises(CounterpartyNotFoundError):
            document_service.create(
                Document(document_type=DocumentType.INVOICE, counterparty_id=uuid4())
            )

    def test_inactive_counterparty(
        self,
        document_service: DocumentService,
        counterparty_repo,
        customer: Counterparty,
    ):
        customer.deactivate()
        counterparty_repo.update(customer)

        with pytest.raises(ValidationError) as exc_info:
            document_service.create(
                Document(document_type=DocumentType.INVOICE, counterparty_id=customer.id)
            )

        assert exc_info.value.field == "counterparty_id"

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"series": "A-1"}, "series"),
            ({"currency": "XYZ"}, "currency"),
            ({"exchange_rate": Decimal("0")}, "exchange_rate"),
            (
                {"issue_date": date(2025, 5, 1), "due_date": date(2025, 4, 1)},
                "due_date",
            ),
            ({"withholding_rate": Decimal("-5")}, "withholding_rate"),
        ],
    )
    def test_rejects_invalid_header(
        self,
        document_service: DocumentService,
        customer: Counterparty,
        kwargs: dict,
        field: str,
    ):
        with pytest.raises(ValidationError) as exc_info:
            document_service.create(
                Document(
                    document_type=DocumentType.INVOICE,
                    counterparty_id=customer.id,
                    lines=[_line()],
                    **kwargs,
                )
            )

        assert exc_info.value.field == field

    def test_rejects_blank_line_description(
        self, document_service: DocumentService, customer: Counterparty
    ):
        with pytest.raises(ValidationError) as exc_info:
            document_service.create(
                Document(
                    document_type=DocumentType.INVOICE,
                    counterparty_id=customer.id,
                    lines=[_line(description="  ")],
                )
            )

        assert exc_info.value.field == "description"

    def test_rejects_non_draft(self, document_service: DocumentService, customer: Counterparty):
        with pytest.raises(ValidationError):
            document_service.create(
                Document(
                    document_type=DocumentType.INVOICE,
                    counterparty_id=customer.id,
                    status=DocumentStatus.SENT,
                )
            )

    def test_records_audit_entry(
        self, audit_service: AuditService, draft_invoice: Document
    ):
        entries = audit_service.list_by_entity(AuditEntityType.DOCUMENT, draft_invoice.id)

        assert [e.action for e in entries] == [AuditAction.CREATE]
        assert entries[0].actor == "alice"
        assert entries[0].new_values["total"] == "42.85"

    def test_get_missing(self, document_service: DocumentService):
        with pytest.raises(DocumentNotFoundError):
            document_service.get(uuid4())


class TestEditing:
    def test_add_line_recomputes(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        document = document_service.add_line(
            draft_invoice.id, _line(price="10.00", vat_category=VatCategory.SUPER_REDUCED)
        )

        assert document.subtotal == Decimal("45.00")
        assert document.vat_amount == Decimal("8.45")
        assert document.total == Decimal("53.45")
        assert document.lines[-1].line_number == 3

    def test_update_line(self, document_service: DocumentService, draft_invoice: Document):
        line_id = draft_invoice.lines[0].id

        document = document_service.update_line(
            draft_invoice.id, line_id, {"quantity": "5"}
        )

        assert document.get_line(line_id).net_amount == Decimal("50.00")
        assert document.total == Decimal("67.65")

    def test_explicit_discount_replaces_percentage(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        line_id = draft_invoice.lines[0].id
        document_service.update_line(draft_invoice.id, line_id, {"discount_percent": "10"})

        document = document_service.update_line(
            draft_invoice.id, line_id, {"discount_amount": "5"}
        )

        line = document.get_line(line_id)
        assert line.discount_percent == Decimal("0")
        assert line.discount_amount == Decimal("5.00")
        assert line.net_amount == Decimal("25.00")

    def test_update_line_rejects_unknown_field(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        with pytest.raises(ValidationError) as exc_info:
            document_service.update_line(
                draft_invoice.id, draft_invoice.lines[0].id, {"net_amount": "1"}
            )

        assert exc_info.value.field == "net_amount"

    def test_update_missing_line(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        with pytest.raises(LineItemNotFoundError):
            document_service.update_line(draft_invoice.id, uuid4(), {"quantity": "2"})

    def test_remove_line(self, document_service: DocumentService, draft_invoice: Document):
        document = document_service.remove_line(draft_invoice.id, draft_invoice.lines[1].id)

        assert len(document.lines) == 1
        assert document.total == Decimal("37.20")
        assert len(document_service.get(draft_invoice.id).lines) == 1

    def test_replace_lines(self, document_service: DocumentService, draft_invoice: Document):
        document = document_service.replace_lines(
            draft_invoice.id, [_line(price="200.00", vat_category=VatCategory.EXEMPT)]
        )

        assert document.subtotal == Decimal("200.00")
        assert document.vat_amount == Decimal("0.00")
        assert document.total == Decimal("200.00")

    def test_update_header(self, document_service: DocumentService, draft_invoice: Document):
        document = document_service.update_header(
            draft_invoice.id,
            {
                "withholding_rate": "20",
                "payment_method": "bank_transfer",
                "customer_notes": "Thank you",
                "due_date": "2025-05-01",
            },
        )

        assert document.withholding_amount == Decimal("7.00")
        assert document.total == Decimal("35.85")
        assert document.payment_method == PaymentMethod.BANK_TRANSFER
        assert document.due_date == date(2025, 5, 1)

    def test_update_header_rejects_unknown_field(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        with pytest.raises(ValidationError) as exc_info:
            document_service.update_header(draft_invoice.id, {"total": "1"})

        assert exc_info.value.field == "total"

    def test_issue_year_is_fixed_once_numbered(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        with pytest.raises(ValidationError) as exc_info:
            document_service.update_header(draft_invoice.id, {"issue_date": "2026-01-05"})

        assert exc_info.value.field == "issue_date"

    def test_stale_version_is_rejected(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        document_service.add_line(draft_invoice.id, _line())

        with pytest.raises(ConcurrentModificationError):
            document_service.add_line(
                draft_invoice.id, _line(), expected_version=draft_invoice.version
            )

    def test_concurrent_writer_loses(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        draft_invoice: Document,
    ):
        stale = document_repo.get(draft_invoice.id)
        document_service.add_line(draft_invoice.id, _line())
        stale.internal_notes = "late write"

        with pytest.raises(ConcurrentModificationError):
            document_repo.update(stale)

    def test_edit_bumps_version(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        document = document_service.add_line(draft_invoice.id, _line())

        assert document.version == draft_invoice.version + 1
        assert document_service.get(draft_invoice.id).version == document.version

    def test_sent_document_is_not_editable(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.send(finalized_invoice.id)

        with pytest.raises(DocumentNotEditableError):
            document_service.add_line(finalized_invoice.id, _line())

    @pytest.mark.parametrize(
        "status", [ComplianceStatus.SUBMITTED, ComplianceStatus.ACCEPTED]
    )
    def test_certified_document_rejects_edits(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        finalized_invoice: Document,
        status: ComplianceStatus,
    ):
        document_repo.update_compliance(
            finalized_invoice.id,
            ComplianceRecord(status=status, mark="400001"),
            ComplianceStatus.NOT_SUBMITTED,
        )

        with pytest.raises(DocumentNotEditableError):
            document_service.add_line(finalized_invoice.id, _line())
        with pytest.raises(DocumentNotEditableError):
            document_service.update_header(
                finalized_invoice.id, {"customer_notes": "changed"}
            )

    def test_pending_submission_blocks_edits(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        finalized_invoice: Document,
    ):
        document_repo.update_compliance(
            finalized_invoice.id,
            ComplianceRecord(status=ComplianceStatus.PENDING),
            ComplianceStatus.NOT_SUBMITTED,
        )

        with pytest.raises(DocumentNotEditableError):
            document_service.remove_line(
                finalized_invoice.id, finalized_invoice.lines[0].id
            )

    def test_partially_paid_document_is_not_editable(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.record_payment(finalized_invoice.id, "40.00")

        with pytest.raises(DocumentNotEditableError):
            document_service.remove_line(
                finalized_invoice.id, finalized_invoice.lines[0].id
            )


class TestLocking:
    def test_lock_blocks_other_actors(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        document_service.lock(draft_invoice.id, "alice")

        with pytest.raises(DocumentLockedError):
            document_service.add_line(draft_invoice.id, _line(), actor="bob")

        document = document_service.add_line(draft_invoice.id, _line(), actor="alice")
        assert len(document.lines) == 3

    def test_unlock_by_other_actor_is_rejected(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        document_service.lock(draft_invoice.id, "alice")

        with pytest.raises(DocumentLockedError):
            document_service.unlock(draft_invoice.id, "bob")

    def test_unlock_releases(self, document_service: DocumentService, draft_invoice: Document):
        document_service.lock(draft_invoice.id, "alice")
        document = document_service.unlock(draft_invoice.id, "alice")

        assert document.locked_by is None
        assert document.locked_at is None
        document_service.add_line(draft_invoice.id, _line(), actor="bob")


class TestFinalize:
    def test_moves_draft_to_pending(self, finalized_invoice: Document):
        assert finalized_invoice.status == DocumentStatus.PENDING
        assert finalized_invoice.document_number == "A-000001"

    def test_numbers_deferred_draft(
        self, document_service: DocumentService, customer: Counterparty, draft_invoice: Document
    ):
        deferred = document_service.create(
            Document(
                document_type=DocumentType.INVOICE,
                counterparty_id=customer.id,
                issue_date=date(2025, 3, 20),
                lines=[_line()],
            ),
            assign_number=False,
        )

        document = document_service.finalize(deferred.id)

        assert document.sequence_number == 2
        assert document_service.get(deferred.id).document_number == "A-000002"

    def test_requires_lines(self, document_service: DocumentService, customer: Counterparty):
        document = document_service.create(
            Document(document_type=DocumentType.INVOICE, counterparty_id=customer.id)
        )

        with pytest.raises(ValidationError) as exc_info:
            document_service.finalize(document.id)

        assert exc_info.value.field == "lines"

    def test_only_from_draft(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        with pytest.raises(InvalidTransitionError):
            document_service.finalize(finalized_invoice.id)


class TestSend:
    def test_send_requires_finalized(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        with pytest.raises(InvalidTransitionError):
            document_service.send(draft_invoice.id)

    def test_send_records_target_and_renders(
        self,
        document_repo,
        counterparty_repo,
        numbering,
        audit_service,
        settings,
        finalized_invoice: Document,
    ):
        renderer = FakeRenderer()
        service = DocumentService(
            document_repo,
            counterparty_repo,
            numbering,
            audit_service,
            renderer=renderer,
            settings=settings,
        )

        content = service.send(finalized_invoice.id, actor="alice")

        stored = service.get(finalized_invoice.id)
        assert content == b"A-000001 for Hellenic Widgets SA"
        assert stored.status == DocumentStatus.SENT
        assert stored.emailed_to == "billing@widgets.gr"
        assert stored.sent_at is not None

    def test_explicit_address_wins(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        content = document_service.send(finalized_invoice.id, emailed_to="ap@widgets.gr")

        assert content is None
        assert document_service.get(finalized_invoice.id).emailed_to == "ap@widgets.gr"

    def test_render_failure_leaves_document_pending(
        self,
        document_repo,
        counterparty_repo,
        numbering,
        audit_service,
        settings,
        finalized_invoice: Document,
    ):
        service = DocumentService(
            document_repo,
            counterparty_repo,
            numbering,
            audit_service,
            renderer=FakeRenderer(fail=True),
            settings=settings,
        )

        with pytest.raises(RuntimeError):
            service.send(finalized_invoice.id)

        assert service.get(finalized_invoice.id).status == DocumentStatus.PENDING

    def test_mark_viewed(self, document_service: DocumentService, finalized_invoice: Document):
        document_service.send(finalized_invoice.id)

        document = document_service.mark_viewed(finalized_invoice.id)

        assert document.status == DocumentStatus.VIEWED
        assert document.viewed_at is not None

    def test_mark_viewed_requires_sent(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        with pytest.raises(InvalidTransitionError):
            document_service.mark_viewed(finalized_invoice.id)


class TestPayments:
    def test_full_payment_marks_paid(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        payment = document_service.record_payment(
            finalized_invoice.id, Decimal("42.85"), method=PaymentMethod.CARD
        )

        document = document_service.get(finalized_invoice.id)
        assert document.status == DocumentStatus.PAID
        assert document.balance_due == Decimal("0.00")
        assert document.paid_amount == Decimal("42.85")
        assert payment.amount == Decimal("42.85")
        assert payment.method == PaymentMethod.CARD

    def test_partial_payment(self, document_service: DocumentService, finalized_invoice: Document):
        document_service.record_payment(finalized_invoice.id, "20.00")

        document = document_service.get(finalized_invoice.id)
        assert document.status == DocumentStatus.PARTIAL
        assert document.balance_due == Decimal("22.85")

    def test_payments_are_stored(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.record_payment(finalized_invoice.id, "20.00", notes="first")
        document_service.record_payment(finalized_invoice.id, "22.85", notes="second")

        payments = document_service.list_payments(finalized_invoice.id)

        assert [p.amount for p in payments] == [Decimal("20.00"), Decimal("22.85")]
        assert document_service.get(finalized_invoice.id).status == DocumentStatus.PAID

    @pytest.mark.parametrize("amount", ["0", "-5", "42.86"])
    def test_rejects_invalid_amount(
        self, document_service: DocumentService, finalized_invoice: Document, amount: str
    ):
        with pytest.raises(ValidationError) as exc_info:
            document_service.record_payment(finalized_invoice.id, amount)

        assert exc_info.value.field == "amount"
        assert document_service.list_payments(finalized_invoice.id) == []

    def test_rejects_overpayment_on_paid(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.record_payment(finalized_invoice.id, "42.85")

        with pytest.raises(ValidationError):
            document_service.record_payment(finalized_invoice.id, "0.01")

    def test_rejects_payment_on_cancelled(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.cancel(finalized_invoice.id)

        with pytest.raises(InvalidTransitionError):
            document_service.record_payment(finalized_invoice.id, "10.00")

    def test_payment_allowed_on_certified_document(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        finalized_invoice: Document,
    ):
        _certify(document_repo, finalized_invoice)

        document_service.record_payment(finalized_invoice.id, "42.85")

        assert document_service.get(finalized_invoice.id).status == DocumentStatus.PAID


class TestCancel:
    def test_cancel_pending(self, document_service: DocumentService, finalized_invoice: Document):
        document = document_service.cancel(finalized_invoice.id)

        assert document.status == DocumentStatus.CANCELLED

    def test_cancel_twice_is_invalid(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.cancel(finalized_invoice.id)

        with pytest.raises(InvalidTransitionError):
            document_service.cancel(finalized_invoice.id)

    def test_cancel_blocked_while_certified(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        finalized_invoice: Document,
    ):
        _certify(document_repo, finalized_invoice)

        with pytest.raises(ComplianceCancellationRequiredError) as exc_info:
            document_service.cancel(finalized_invoice.id)

        assert exc_info.value.context["mark"] == "400001"
        assert (
            document_service.get(finalized_invoice.id).status == DocumentStatus.PENDING
        )

    def test_cancel_blocked_while_submission_pending(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        finalized_invoice: Document,
    ):
        document_repo.update_compliance(
            finalized_invoice.id,
            ComplianceRecord(status=ComplianceStatus.PENDING),
            ComplianceStatus.NOT_SUBMITTED,
        )

        with pytest.raises(ConflictError):
            document_service.cancel(finalized_invoice.id)

    def test_cancel_allowed_after_compliance_cancel(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        finalized_invoice: Document,
    ):
        document_repo.update_compliance(
            finalized_invoice.id,
            ComplianceRecord(
                status=ComplianceStatus.CANCELLED,
                mark="400001",
                cancellation_mark="500001",
            ),
            ComplianceStatus.NOT_SUBMITTED,
        )

        document = document_service.cancel(finalized_invoice.id)

        assert document.status == DocumentStatus.CANCELLED


class TestDelete:
    def test_soft_deletes_draft(
        self,
        document_service: DocumentService,
        document_repo: SQLiteDocumentRepository,
        draft_invoice: Document,
    ):
        document_service.delete(draft_invoice.id, actor="alice")

        with pytest.raises(DocumentNotFoundError):
            document_service.get(draft_invoice.id)
        deleted = document_repo.get(draft_invoice.id, include_deleted=True)
        assert deleted is not None
        assert deleted.deleted_at is not None

    def test_only_drafts_can_be_deleted(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        with pytest.raises(InvalidTransitionError):
            document_service.delete(finalized_invoice.id)

    def test_deleted_documents_are_not_listed(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        document_service.delete(draft_invoice.id)

        assert document_service.list_documents() == []
        assert len(document_service.list_documents(DocumentFilter(include_deleted=True))) == 1


class TestDuplicate:
    def test_copies_into_unnumbered_draft(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        copy = document_service.duplicate(finalized_invoice.id, actor="bob")

        assert copy.id != finalized_invoice.id
        assert copy.status == DocumentStatus.DRAFT
        assert copy.sequence_number is None
        assert copy.related_document_id == finalized_invoice.id
        assert copy.compliance.status == ComplianceStatus.NOT_SUBMITTED
        assert copy.total == finalized_invoice.total
        assert copy.issue_date == date.today()
        assert copy.due_date - copy.issue_date == (
            finalized_invoice.due_date - finalized_invoice.issue_date
        )
        assert {line.id for line in copy.lines}.isdisjoint(
            {line.id for line in finalized_invoice.lines}
        )


class TestEffectiveStatus:
    def test_overdue_is_derived(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.send(finalized_invoice.id)

        assert (
            document_service.effective_status(finalized_invoice.id, date(2025, 5, 1))
            == DocumentStatus.OVERDUE
        )
        assert (
            document_service.effective_status(finalized_invoice.id, date(2025, 4, 1))
            == DocumentStatus.SENT
        )

    def test_paid_is_never_overdue(
        self, document_service: DocumentService, finalized_invoice: Document
    ):
        document_service.record_payment(finalized_invoice.id, "42.85")

        assert (
            document_service.effective_status(finalized_invoice.id, date(2026, 1, 1))
            == DocumentStatus.PAID
        )

    def test_draft_is_never_overdue(
        self, document_service: DocumentService, draft_invoice: Document
    ):
        assert (
            document_service.effective_status(draft_invoice.id, date(2026, 1, 1))
            == DocumentStatus.DRAFT
        )


class TestListDocuments:
    def test_filters_by_status_and_type(
        self,
        document_service: DocumentService,
        customer: Counterparty,
        finalized_invoice: Document,
    ):
        document_service.create(
            Document(document_type=DocumentType.RECEIPT, counterparty_id=customer.id)
        )

        pending = document_service.list_documents(
            DocumentFilter(statuses=[DocumentStatus.PENDING])
        )
        receipts = document_service.list_documents(
            DocumentFilter(document_types=[DocumentType.RECEIPT])
        )

        assert [d.id for d in pending] == [finalized_invoice.id]
        assert len(receipts) == 1
        assert receipts[0].document_type == DocumentType.RECEIPT
