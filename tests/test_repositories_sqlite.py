"""Tests for SQLite repository implementations."""

from datetime import date
from decimal import Decimal

import pytest

from fiscal_documents.domain.calculator import recompute_document
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import ComplianceRecord, Document, LineItem, Payment
from fiscal_documents.domain.value_objects import (
    ComplianceStatus,
    DocumentStatus,
    DocumentType,
    IncomeClassification,
    PaymentMethod,
    VatCategory,
)
from fiscal_documents.exceptions import (
    ConcurrentModificationError,
    DuplicateNumberError,
    PersistenceError,
)
from fiscal_documents.repositories.interfaces import DocumentFilter
from fiscal_documents.repositories.sqlite import (
    SQLiteCounterpartyRepository,
    SQLiteDatabase,
    SQLiteDocumentRepository,
)


def _document(customer: Counterparty, number: int | None = 1, **kwargs) -> Document:
    values = {
        "document_type": DocumentType.INVOICE,
        "counterparty_id": customer.id,
        "series": "A",
        "issue_date": date(2025, 3, 14),
        "lines": [
            LineItem(
                description="Consulting",
                quantity=Decimal("2.5"),
                unit_price=Decimal("80.00"),
                vat_category=VatCategory.REDUCED,
                discount_percent=Decimal("10"),
                income_classification=IncomeClassification.SALE_OF_SERVICES,
            )
        ],
    }
    values.update(kwargs)
    document = Document(**values)
    recompute_document(document)
    if number is not None:
        document.assign_number(number)
    return document


class TestSQLiteDatabase:
    def test_transaction_commits(self, db: SQLiteDatabase, counterparty_repo):
        counterparty_repo.add(Counterparty(name="Committed"))

        assert [c.name for c in counterparty_repo.list_all()] == ["Committed"]

    def test_transaction_rolls_back_on_error(self, db: SQLiteDatabase, counterparty_repo):
        with pytest.raises(RuntimeError):
            with db.transaction():
                counterparty_repo.add(Counterparty(name="Rolled back"))
                raise RuntimeError("boom")

        assert list(counterparty_repo.list_all()) == []
        assert not db.in_transaction

    def test_nested_blocks_commit_once(self, db: SQLiteDatabase, counterparty_repo):
        with pytest.raises(RuntimeError):
            with db.transaction():
                with db.transaction():
                    counterparty_repo.add(Counterparty(name="Inner"))
                raise RuntimeError("outer failure")

        assert list(counterparty_repo.list_all()) == []

    def test_database_errors_become_persistence_errors(self, db: SQLiteDatabase):
        with pytest.raises(PersistenceError):
            with db.transaction() as conn:
                conn.execute("INSERT INTO no_such_table VALUES (1)")

    def test_initialize_is_idempotent(self, db: SQLiteDatabase):
        db.initialize()


class TestCounterpartyRepository:
    def test_round_trip(self, counterparty_repo: SQLiteCounterpartyRepository):
        counterparty = Counterparty(
            name="Acme",
            vat_number="111111111",
            country="cy",
            street="Main",
            street_number="1",
            postal_code="1010",
            city="Nicosia",
            email="ap@acme.cy",
        )
        counterparty_repo.add(counterparty)

        stored = counterparty_repo.get(counterparty.id)

        assert stored == counterparty

    def test_vat_lookup_prefers_active(self, counterparty_repo: SQLiteCounterpartyRepository):
        old = Counterparty(name="Old", vat_number="222222222")
        old.deactivate()
        counterparty_repo.add(old)
        current = Counterparty(name="Current", vat_number="222222222")
        counterparty_repo.add(current)

        assert counterparty_repo.get_by_vat_number("222222222").id == current.id

    def test_list_active_only(self, counterparty_repo: SQLiteCounterpartyRepository):
        active = Counterparty(name="Active")
        inactive = Counterparty(name="Inactive", is_active=False)
        counterparty_repo.add(active)
        counterparty_repo.add(inactive)

        assert [c.name for c in counterparty_repo.list_all(active_only=True)] == ["Active"]
        assert len(list(counterparty_repo.list_all())) == 2


class TestDocumentRepository:
    def test_round_trip(self, document_repo: SQLiteDocumentRepository, customer: Counterparty):
        document = _document(
            customer,
            due_date=date(2025, 4, 13),
            payment_method=PaymentMethod.CARD,
            withholding_rate=Decimal("20"),
            customer_notes="Thanks",
        )
        recompute_document(document)
        document_repo.add(document)

        stored = document_repo.get(document.id)

        assert stored is not None
        assert stored.document_number == "A-000001"
        assert stored.fiscal_year == 2025
        assert stored.total == document.total
        assert stored.withholding_amount == document.withholding_amount
        assert stored.payment_method == PaymentMethod.CARD
        assert stored.due_date == date(2025, 4, 13)
        assert stored.version == 1
        [line] = stored.lines
        assert line.quantity == Decimal("2.5")
        assert line.discount_amount == Decimal("20.00")
        assert line.net_amount == Decimal("180.00")
        assert line.vat_amount == Decimal("23.40")
        assert line.income_classification == IncomeClassification.SALE_OF_SERVICES

    def test_duplicate_number(self, document_repo: SQLiteDocumentRepository, customer):
        document_repo.add(_document(customer))

        with pytest.raises(DuplicateNumberError) as exc_info:
            document_repo.add(_document(customer))

        assert exc_info.value.context["sequence_number"] == 1

    def test_unnumbered_drafts_do_not_collide(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document_repo.add(_document(customer, number=None))
        document_repo.add(_document(customer, number=None))

        assert len(document_repo.list_documents(DocumentFilter())) == 2

    def test_update_replaces_lines_and_bumps_version(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer)
        document_repo.add(document)
        document.lines.append(
            LineItem(description="Extra", quantity=Decimal("1"), unit_price=Decimal("5"))
        )
        recompute_document(document)

        document_repo.update(document)

        stored = document_repo.get(document.id)
        assert document.version == 2
        assert stored.version == 2
        assert [line.description for line in stored.lines] == ["Consulting", "Extra"]

    def test_stale_update_is_rejected(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer)
        document_repo.add(document)
        stale = document_repo.get(document.id)
        document_repo.update(document)

        stale.customer_notes = "late"
        with pytest.raises(ConcurrentModificationError):
            document_repo.update(stale)
        assert document_repo.get(document.id).customer_notes is None

    def test_update_compliance_is_compare_and_set(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer)
        document_repo.add(document)
        claim = ComplianceRecord(status=ComplianceStatus.PENDING)

        first = document_repo.update_compliance(
            document.id, claim, ComplianceStatus.NOT_SUBMITTED
        )
        second = document_repo.update_compliance(
            document.id, claim, ComplianceStatus.NOT_SUBMITTED
        )

        assert first is True
        assert second is False
        stored = document_repo.get(document.id)
        assert stored.compliance.status == ComplianceStatus.PENDING
        assert stored.version == 2

    def test_update_compliance_checks_version_when_given(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer)
        document_repo.add(document)
        document_repo.update(document)
        claim = ComplianceRecord(status=ComplianceStatus.PENDING)

        stale = document_repo.update_compliance(
            document.id, claim, ComplianceStatus.NOT_SUBMITTED, expected_version=1
        )
        current = document_repo.update_compliance(
            document.id, claim, ComplianceStatus.NOT_SUBMITTED, expected_version=2
        )

        assert stale is False
        assert current is True

    def test_compliance_record_round_trip(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer)
        document_repo.add(document)
        record = ComplianceRecord(
            status=ComplianceStatus.REJECTED,
            errors=[{"message": "Wrong totals", "code": "203"}],
        )

        document_repo.update_compliance(document.id, record, ComplianceStatus.NOT_SUBMITTED)

        assert document_repo.get(document.id).compliance == record

    def test_soft_delete_hides_document(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer)
        document_repo.add(document)

        document_repo.soft_delete(document)

        assert document_repo.get(document.id) is None
        assert document_repo.get(document.id, include_deleted=True).is_deleted
        assert document_repo.list_documents(DocumentFilter()) == []

    def test_deleted_numbers_count_toward_max(
        self, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer, number=4)
        document_repo.add(document)
        document_repo.soft_delete(document)

        assert document_repo.max_sequence_number(DocumentType.INVOICE, "A", 2025) == 4
        assert document_repo.max_sequence_number(DocumentType.INVOICE, "B", 2025) == 0

    def test_hard_delete_cascades_to_lines_and_payments(
        self, db: SQLiteDatabase, document_repo: SQLiteDocumentRepository, customer
    ):
        document = _document(customer)
        document_repo.add(document)
        document_repo.add_payment(Payment(document_id=document.id, amount=Decimal("10")))

        with db.transaction() as conn:
            conn.execute("DELETE FROM documents WHERE id = ?", (str(document.id),))

        conn = db.get_connection()
        assert conn.execute("SELECT COUNT(*) FROM document_lines").fetchone()[0] == 0
        assert conn.execute("SELECT COUNT(*) FROM payments").fetchone()[0] == 0

    def test_payments_round_trip(self, document_repo: SQLiteDocumentRepository, customer):
        document = _document(customer)
        document_repo.add(document)
        payment = Payment(
            document_id=document.id,
            amount=Decimal("50.00"),
            method=PaymentMethod.BANK_TRANSFER,
            payment_date=date(2025, 3, 20),
            notes="wire",
            recorded_by="alice",
        )

        document_repo.add_payment(payment)

        [stored] = document_repo.list_payments(document.id)
        assert stored.amount == Decimal("50.00")
        assert stored.method == PaymentMethod.BANK_TRANSFER
        assert stored.payment_date == date(2025, 3, 20)
        assert stored.recorded_by == "alice"


class TestListDocuments:
    @pytest.fixture
    def documents(self, document_repo: SQLiteDocumentRepository, customer):
        march = _document(customer, number=1)
        april = _document(customer, number=2, issue_date=date(2025, 4, 2))
        receipt = _document(
            customer, number=1, document_type=DocumentType.RECEIPT, series="R"
        )
        april.status = DocumentStatus.PENDING
        for document in (march, april, receipt):
            document_repo.add(document)
        return march, april, receipt

    def test_newest_first(self, document_repo: SQLiteDocumentRepository, documents):
        _, april, _ = documents

        listed = document_repo.list_documents(DocumentFilter())

        assert listed[0].id == april.id

    def test_filter_by_type_and_series(self, document_repo, documents):
        _, _, receipt = documents

        by_type = document_repo.list_documents(
            DocumentFilter(document_types=[DocumentType.RECEIPT])
        )
        by_series = document_repo.list_documents(DocumentFilter(series="R"))

        assert [d.id for d in by_type] == [receipt.id]
        assert [d.id for d in by_series] == [receipt.id]

    def test_filter_by_status(self, document_repo, documents):
        _, april, _ = documents

        pending = document_repo.list_documents(
            DocumentFilter(statuses=[DocumentStatus.PENDING])
        )
        not_pending = document_repo.list_documents(
            DocumentFilter(exclude_statuses=[DocumentStatus.PENDING])
        )

        assert [d.id for d in pending] == [april.id]
        assert april.id not in {d.id for d in not_pending}
        assert len(not_pending) == 2

    def test_filter_by_date_range(self, document_repo, documents):
        _, april, _ = documents

        listed = document_repo.list_documents(
            DocumentFilter(date_from=date(2025, 4, 1), date_to=date(2025, 4, 30))
        )

        assert [d.id for d in listed] == [april.id]

    def test_limit_and_offset(self, document_repo, documents):
        first = document_repo.list_documents(DocumentFilter(limit=2))
        rest = document_repo.list_documents(DocumentFilter(limit=2, offset=2))

        assert len(first) == 2
        assert len(rest) == 1

    def test_compliance_totals_skip_drafts(self, document_repo, documents):
        totals = document_repo.compliance_totals()

        _, april, _ = documents
        assert totals == {ComplianceStatus.NOT_SUBMITTED: (1, april.total)}
