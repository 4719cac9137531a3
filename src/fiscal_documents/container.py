"""Dependency injection container for Fiscal Documents.

Provides centralized dependency management using a simple container pattern.
Services are created lazily on first access and cached, and tests can swap
the whole graph by constructing a Container with their own Settings.

Usage:
    from fiscal_documents.container import get_container

    container = get_container()
    documents = container.document_service
    gateway = container.compliance_gateway
"""

from functools import cached_property, lru_cache
from typing import TYPE_CHECKING

from fiscal_documents.config import DatabaseType, Settings, get_settings
from fiscal_documents.exceptions import ValidationError
from fiscal_documents.logging_config import get_logger

if TYPE_CHECKING:
    from fiscal_documents.integrations.mydata_client import MyDataClient
    from fiscal_documents.repositories.interfaces import (
        AuditRepository,
        CounterpartyRepository,
        Database,
        DocumentRepository,
    )
    from fiscal_documents.services.audit import AuditService
    from fiscal_documents.services.compliance import ComplianceGateway
    from fiscal_documents.services.counterparties import CounterpartyService
    from fiscal_documents.services.documents import DocumentService
    from fiscal_documents.services.interfaces import DocumentRenderer
    from fiscal_documents.services.numbering import NumberingService

logger = get_logger(__name__)


class Container:
    """Lazily wires repositories and services for one database connection.

    A container owns a single connection, so give each thread or process
    its own container:

        test_settings = Settings(sqlite_path=":memory:")
        container = Container(settings=test_settings)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        renderer: "DocumentRenderer | None" = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._renderer = renderer
        logger.debug(
            "container_created",
            database_type=self._settings.database_type.value,
            environment=self._settings.environment.value,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def database(self) -> "Database":
        """The configured store, schema created on first access."""
        if self._settings.database_type == DatabaseType.POSTGRES:
            return self._create_postgres_database()
        return self._create_sqlite_database()

    def _create_sqlite_database(self) -> "Database":
        from fiscal_documents.repositories.sqlite import SQLiteDatabase

        db_path = str(self._settings.sqlite_path)
        logger.info("initializing_sqlite_database", path=db_path)

        db = SQLiteDatabase(db_path, busy_timeout=self._settings.sqlite_busy_timeout)
        db.initialize()
        return db

    def _create_postgres_database(self) -> "Database":
        from fiscal_documents.repositories.postgres import PostgresDatabase

        url = self._settings.database_url
        if not url:
            raise ValidationError(
                "database_url must be set when database_type is postgres",
                field="database_url",
            )

        logger.info(
            "initializing_postgres_database",
            # Never log credentials
            host=url.split("@")[-1].split("/")[0] if "@" in url else "localhost",
        )

        db = PostgresDatabase(url)
        db.initialize()
        return db

    @property
    def _uses_postgres(self) -> bool:
        return self._settings.database_type == DatabaseType.POSTGRES

    @cached_property
    def counterparty_repository(self) -> "CounterpartyRepository":
        if self._uses_postgres:
            from fiscal_documents.repositories.postgres import (
                PostgresCounterpartyRepository,
            )

            return PostgresCounterpartyRepository(self.database)  # type: ignore[arg-type]
        from fiscal_documents.repositories.sqlite import SQLiteCounterpartyRepository

        return SQLiteCounterpartyRepository(self.database)  # type: ignore[arg-type]

    @cached_property
    def document_repository(self) -> "DocumentRepository":
        if self._uses_postgres:
            from fiscal_documents.repositories.postgres import (
                PostgresDocumentRepository,
            )

            return PostgresDocumentRepository(self.database)  # type: ignore[arg-type]
        from fiscal_documents.repositories.sqlite import SQLiteDocumentRepository

        return SQLiteDocumentRepository(self.database)  # type: ignore[arg-type]

    @cached_property
    def audit_repository(self) -> "AuditRepository":
        if self._uses_postgres:
            from fiscal_documents.repositories.postgres import PostgresAuditRepository

            return PostgresAuditRepository(self.database)  # type: ignore[arg-type]
        from fiscal_documents.repositories.sqlite import SQLiteAuditRepository

        return SQLiteAuditRepository(self.database)  # type: ignore[arg-type]

    @cached_property
    def audit_service(self) -> "AuditService":
        from fiscal_documents.services.audit import AuditService

        return AuditService(
            self.audit_repository, enabled=self._settings.enable_audit_log
        )

    @cached_property
    def numbering_service(self) -> "NumberingService":
        from fiscal_documents.services.numbering import NumberingService

        return NumberingService(
            self.document_repository,
            max_attempts=self._settings.numbering_max_attempts,
        )

    @cached_property
    def counterparty_service(self) -> "CounterpartyService":
        from fiscal_documents.services.counterparties import CounterpartyService

        return CounterpartyService(self.counterparty_repository, self.audit_service)

    @cached_property
    def document_service(self) -> "DocumentService":
        from fiscal_documents.services.documents import DocumentService

        return DocumentService(
            self.document_repository,
            self.counterparty_repository,
            self.numbering_service,
            self.audit_service,
            renderer=self._renderer,
            settings=self._settings,
        )

    @cached_property
    def mydata_client(self) -> "MyDataClient":
        from fiscal_documents.integrations.mydata_client import MyDataClient

        return MyDataClient(self._settings)

    @cached_property
    def compliance_gateway(self) -> "ComplianceGateway":
        from fiscal_documents.integrations.mydata_schema import IssuerProfile
        from fiscal_documents.services.compliance import ComplianceGateway

        return ComplianceGateway(
            self.document_repository,
            self.counterparty_repository,
            self.mydata_client,
            self.audit_service,
            IssuerProfile.from_settings(self._settings),
        )

    def close(self) -> None:
        """Release the database connection and HTTP client, if they were opened."""
        if "mydata_client" in self.__dict__:
            self.mydata_client.close()
        if "database" in self.__dict__:
            logger.info("closing_database_connection")
            self.database.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


_container: Container | None = None


@lru_cache
def get_container() -> Container:
    """Get the global container singleton.

    For testing, create a Container directly with custom settings instead
    of using this function.
    """
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Close and forget the global container."""
    global _container
    if _container is not None:
        _container.close()
        _container = None
    get_container.cache_clear()
