from collections.abc import Iterator
from datetime import date
from decimal import Decimal

import pytest

from fiscal_documents.config import Environment, Settings
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import Document, LineItem
from fiscal_documents.domain.value_objects import DocumentType, VatCategory
from fiscal_documents.repositories.sqlite import (
    SQLiteAuditRepository,
    SQLiteCounterpartyRepository,
    SQLiteDatabase,
    SQLiteDocumentRepository,
)
from fiscal_documents.services.audit import AuditService
from fiscal_documents.services.counterparties import CounterpartyService
from fiscal_documents.services.documents import DocumentService
from fiscal_documents.services.numbering import NumberingService

ISSUER_VAT = "123456789"
CUSTOMER_VAT = "987654321"


def scenario_a_lines() -> list[LineItem]:
    """3 x 10.00 at 24% plus 1 x 5.00 at 13%."""
    return [
        LineItem(
            description="Consulting hour",
            quantity=Decimal("3"),
            unit_price=Decimal("10.00"),
            vat_category=VatCategory.NORMAL,
        ),
        LineItem(
            description="Printed manual",
            quantity=Decimal("1"),
            unit_price=Decimal("5.00"),
            vat_category=VatCategory.REDUCED,
        ),
    ]


@pytest.fixture
def lines_a() -> list[LineItem]:
    return scenario_a_lines()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        environment=Environment.TESTING,
        sqlite_path=tmp_path / "test.db",
        default_series="A",
        mydata_base_url="https://mydata.test",
        mydata_user_id="test-user",
        mydata_subscription_key="test-key",
        issuer_vat_number=ISSUER_VAT,
        issuer_name="Acme Trading",
        issuer_city="Athens",
        issuer_postal_code="10558",
    )


@pytest.fixture
def db() -> Iterator[SQLiteDatabase]:
    database = SQLiteDatabase(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def document_repo(db: SQLiteDatabase) -> SQLiteDocumentRepository:
    return SQLiteDocumentRepository(db)


@pytest.fixture
def counterparty_repo(db: SQLiteDatabase) -> SQLiteCounterpartyRepository:
    return SQLiteCounterpartyRepository(db)


@pytest.fixture
def audit_repo(db: SQLiteDatabase) -> SQLiteAuditRepository:
    return SQLiteAuditRepository(db)


@pytest.fixture
def audit_service(audit_repo: SQLiteAuditRepository) -> AuditService:
    return AuditService(audit_repo)


@pytest.fixture
def numbering(document_repo: SQLiteDocumentRepository) -> NumberingService:
    return NumberingService(document_repo)


@pytest.fixture
def counterparty_service(
    counterparty_repo: SQLiteCounterpartyRepository, audit_service: AuditService
) -> CounterpartyService:
    return CounterpartyService(counterparty_repo, audit_service)


@pytest.fixture
def document_service(
    document_repo: SQLiteDocumentRepository,
    counterparty_repo: SQLiteCounterpartyRepository,
    numbering: NumberingService,
    audit_service: AuditService,
    settings: Settings,
) -> DocumentService:
    return DocumentService(
        document_repo,
        counterparty_repo,
        numbering,
        audit_service,
        settings=settings,
    )


@pytest.fixture
def customer(counterparty_repo: SQLiteCounterpartyRepository) -> Counterparty:
    counterparty = Counterparty(
        name="Hellenic Widgets SA",
        vat_number=CUSTOMER_VAT,
        street="Ermou",
        street_number="12",
        postal_code="10563",
        city="Athens",
        email="billing@widgets.gr",
    )
    counterparty_repo.add(counterparty)
    return counterparty


@pytest.fixture
def draft_invoice(document_service: DocumentService, customer: Counterparty) -> Document:
    return document_service.create(
        Document(
            document_type=DocumentType.INVOICE,
            counterparty_id=customer.id,
            issue_date=date(2025, 3, 14),
            due_date=date(2025, 4, 13),
            lines=scenario_a_lines(),
        ),
        actor="alice",
    )


@pytest.fixture
def finalized_invoice(
    document_service: DocumentService, draft_invoice: Document
) -> Document:
    return document_service.finalize(draft_invoice.id, actor="alice")
