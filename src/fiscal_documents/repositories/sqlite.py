"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import contextlib
import sqlite3
from collections.abc import Iterable, Iterator
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from fiscal_documents.domain.audit import (
    AuditAction,
    AuditEntityType,
    AuditEntry,
    AuditLogSummary,
)
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import (
    ComplianceRecord,
    Document,
    LineItem,
    Payment,
)
from fiscal_documents.domain.value_objects import (
    ComplianceStatus,
    DocumentStatus,
    DocumentType,
)
from fiscal_documents.exceptions import (
    ConcurrentModificationError,
    DuplicateNumberError,
    PersistenceError,
)
from fiscal_documents.logging_config import get_logger
from fiscal_documents.repositories.interfaces import (
    AuditRepository,
    CounterpartyRepository,
    Database,
    DocumentFilter,
    DocumentRepository,
)
from fiscal_documents.repositories.rows import (
    AUDIT_COLUMNS,
    COUNTERPARTY_COLUMNS,
    DOCUMENT_COLUMNS,
    DOCUMENT_UPDATE_COLUMNS,
    LINE_COLUMNS,
    PAYMENT_COLUMNS,
    audit_params,
    compliance_params,
    counterparty_params,
    document_params,
    line_params,
    payment_params,
    row_to_audit_entry,
    row_to_counterparty,
    row_to_document,
    row_to_line,
    row_to_payment,
)

logger = get_logger(__name__)


def _insert_sql(table: str, columns: Iterable[str]) -> str:
    columns = tuple(columns)
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(':' + c for c in columns)})"
    )


class SQLiteDatabase(Database):
    """SQLite database connection manager.

    The connection runs in autocommit mode; writes go through
    ``transaction()``, which opens ``BEGIN IMMEDIATE`` so that the database
    write lock is held from the first statement. That lock is what
    serializes number allocation across connections.
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        check_same_thread: bool = True,
        busy_timeout: float = 30.0,
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._busy_timeout = busy_timeout
        self._connection: sqlite3.Connection | None = None
        self._depth = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path,
                check_same_thread=self._check_same_thread,
                timeout=self._busy_timeout,
                isolation_level=None,
            )
            self._connection.row_factory = sqlite3.Row
            # Enable foreign keys
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_connection()
        if self._depth > 0:
            self._depth += 1
            try:
                yield conn
            finally:
                self._depth -= 1
            return

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            raise PersistenceError(f"Could not start transaction: {e}") from e
        self._depth = 1
        try:
            yield conn
            conn.execute("COMMIT")
        except sqlite3.DatabaseError as e:
            conn.execute("ROLLBACK")
            raise PersistenceError(f"Transaction failed: {e}") from e
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        finally:
            self._depth = 0

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        conn.executescript(
            """
            -- Counterparties table
            CREATE TABLE IF NOT EXISTS counterparties (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                vat_number TEXT,
                country TEXT NOT NULL DEFAULT 'GR',
                street TEXT NOT NULL DEFAULT '',
                street_number TEXT NOT NULL DEFAULT '',
                postal_code TEXT NOT NULL DEFAULT '',
                city TEXT NOT NULL DEFAULT '',
                email TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_counterparties_vat ON counterparties(vat_number);

            -- Documents table
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                document_type TEXT NOT NULL,
                series TEXT NOT NULL,
                fiscal_year INTEGER,
                sequence_number INTEGER,
                document_number TEXT,
                issue_date TEXT NOT NULL,
                due_date TEXT,
                delivery_date TEXT,
                counterparty_id TEXT NOT NULL,
                related_document_id TEXT,
                currency TEXT NOT NULL DEFAULT 'EUR',
                exchange_rate TEXT NOT NULL DEFAULT '1',
                payment_method TEXT,
                payment_terms TEXT,
                subtotal TEXT NOT NULL DEFAULT '0.00',
                discount_amount TEXT NOT NULL DEFAULT '0.00',
                vat_amount TEXT NOT NULL DEFAULT '0.00',
                withholding_rate TEXT NOT NULL DEFAULT '0',
                withholding_amount TEXT NOT NULL DEFAULT '0.00',
                other_charges TEXT NOT NULL DEFAULT '0.00',
                total TEXT NOT NULL DEFAULT '0.00',
                paid_amount TEXT NOT NULL DEFAULT '0.00',
                balance_due TEXT NOT NULL DEFAULT '0.00',
                status TEXT NOT NULL DEFAULT 'draft',
                compliance_status TEXT NOT NULL DEFAULT 'not_submitted',
                compliance_mark TEXT,
                compliance_uid TEXT,
                compliance_submitted_at TEXT,
                compliance_cancellation_mark TEXT,
                compliance_errors TEXT,
                customer_notes TEXT,
                internal_notes TEXT,
                created_by TEXT,
                updated_by TEXT,
                locked_by TEXT,
                locked_at TEXT,
                sent_at TEXT,
                viewed_at TEXT,
                emailed_to TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                deleted_at TEXT,
                version INTEGER NOT NULL DEFAULT 1,
                FOREIGN KEY (counterparty_id) REFERENCES counterparties(id),
                FOREIGN KEY (related_document_id) REFERENCES documents(id)
            );
            CREATE UNIQUE INDEX IF NOT EXISTS uq_documents_number_scope
                ON documents(document_type, series, fiscal_year, sequence_number);
            CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);
            CREATE INDEX IF NOT EXISTS idx_documents_compliance ON documents(compliance_status);
            CREATE INDEX IF NOT EXISTS idx_documents_counterparty ON documents(counterparty_id);
            CREATE INDEX IF NOT EXISTS idx_documents_issue_date ON documents(issue_date);

            -- Document lines table
            CREATE TABLE IF NOT EXISTS document_lines (
                id TEXT PRIMARY KEY,
                document_id TEXT NOT NULL,
                line_number INTEGER NOT NULL,
                item_code TEXT,
                description TEXT NOT NULL,
                quantity TEXT NOT NULL,
                unit TEXT NOT NULL DEFAULT 'pcs',
                unit_price TEXT NOT NULL,
                discount_percent TEXT NOT NULL DEFAULT '0',
                discount_amount TEXT NOT NULL DEFAULT '0',
                vat_category TEXT NOT NULL,
                vat_rate TEXT NOT NULL,
                vat_exemption_reason TEXT,
                income_classification TEXT,
                notes TEXT,
                net_amount TEXT NOT NULL,
                vat_amount TEXT NOT NULL,
                total_amount TEXT NOT NULL,
                FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_document_lines_document ON document_lines(document_id);

            -- Payments table
            CREATE TABLE IF NOT EXISTS payments (
                id TEXT PRIMARY KEY,
                document_id TEXT NOT NULL,
                amount TEXT NOT NULL,
                method TEXT,
                payment_date TEXT NOT NULL,
                notes TEXT,
                recorded_by TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_payments_document ON payments(document_id);

            -- Audit log table
            CREATE TABLE IF NOT EXISTS audit_log (
                id TEXT PRIMARY KEY,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                action TEXT NOT NULL,
                actor TEXT,
                timestamp TEXT NOT NULL,
                old_values TEXT,
                new_values TEXT,
                outcome TEXT NOT NULL DEFAULT 'success',
                change_summary TEXT NOT NULL DEFAULT ''
            );
            CREATE INDEX IF NOT EXISTS idx_audit_log_entity ON audit_log(entity_type, entity_id);
            CREATE INDEX IF NOT EXISTS idx_audit_log_timestamp ON audit_log(timestamp);
            CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log(action);
            CREATE INDEX IF NOT EXISTS idx_audit_log_actor ON audit_log(actor);
            """
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SQLiteCounterpartyRepository(CounterpartyRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, counterparty: Counterparty) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                _insert_sql("counterparties", COUNTERPARTY_COLUMNS),
                counterparty_params(counterparty),
            )

    def get(self, counterparty_id: UUID) -> Counterparty | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM counterparties WHERE id = ?", (str(counterparty_id),)
        ).fetchone()
        return row_to_counterparty(row) if row else None

    def get_by_vat_number(self, vat_number: str) -> Counterparty | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM counterparties WHERE vat_number = ? "
            "ORDER BY is_active DESC, created_at LIMIT 1",
            (vat_number,),
        ).fetchone()
        return row_to_counterparty(row) if row else None

    def list_all(self, active_only: bool = False) -> Iterable[Counterparty]:
        conn = self._db.get_connection()
        query = "SELECT * FROM counterparties"
        if active_only:
            query += " WHERE is_active = 1"
        rows = conn.execute(query + " ORDER BY name").fetchall()
        return [row_to_counterparty(row) for row in rows]

    def update(self, counterparty: Counterparty) -> None:
        columns = [c for c in COUNTERPARTY_COLUMNS if c not in ("id", "created_at")]
        with self._db.transaction() as conn:
            conn.execute(
                f"UPDATE counterparties SET {', '.join(f'{c} = :{c}' for c in columns)} "
                "WHERE id = :id",
                counterparty_params(counterparty),
            )


class SQLiteDocumentRepository(DocumentRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def transaction(self) -> contextlib.AbstractContextManager[sqlite3.Connection]:
        return self._db.transaction()

    def add(self, document: Document) -> None:
        with self._db.transaction() as conn:
            try:
                conn.execute(
                    _insert_sql("documents", DOCUMENT_COLUMNS),
                    document_params(document),
                )
            except sqlite3.IntegrityError as e:
                self._raise_if_duplicate_number(e, document)
                raise
            self._insert_lines(conn, document)

    def get(self, document_id: UUID, include_deleted: bool = False) -> Document | None:
        conn = self._db.get_connection()
        query = "SELECT * FROM documents WHERE id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        row = conn.execute(query, (str(document_id),)).fetchone()
        if row is None:
            return None
        return row_to_document(row, self._load_lines(conn, row["id"]))

    def update(self, document: Document) -> None:
        params = document_params(document)
        params["expected_version"] = document.version
        assignments = ", ".join(f"{c} = :{c}" for c in DOCUMENT_UPDATE_COLUMNS)
        with self._db.transaction() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE documents SET {assignments}, version = version + 1 "
                    "WHERE id = :id AND version = :expected_version",
                    params,
                )
            except sqlite3.IntegrityError as e:
                self._raise_if_duplicate_number(e, document)
                raise
            if cursor.rowcount == 0:
                raise ConcurrentModificationError(document.id, document.version)
            conn.execute(
                "DELETE FROM document_lines WHERE document_id = ?", (str(document.id),)
            )
            self._insert_lines(conn, document)
        document.version += 1

    def update_compliance(
        self,
        document_id: UUID,
        record: ComplianceRecord,
        expected_status: ComplianceStatus,
        expected_version: int | None = None,
    ) -> bool:
        params = compliance_params(record)
        params.update(
            {
                "id": str(document_id),
                "expected_status": expected_status.value,
                "updated_at": datetime.now(UTC).isoformat(),
            }
        )
        assignments = ", ".join(f"{c} = :{c}" for c in compliance_params(record))
        condition = "WHERE id = :id AND compliance_status = :expected_status"
        if expected_version is not None:
            params["expected_version"] = expected_version
            condition += " AND version = :expected_version"
        with self._db.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE documents SET {assignments}, updated_at = :updated_at, "
                "version = version + 1 " + condition,
                params,
            )
        return cursor.rowcount == 1

    def soft_delete(self, document: Document) -> None:
        deleted_at = document.deleted_at or datetime.now(UTC)
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE documents SET deleted_at = ?, updated_at = ?, updated_by = ?, "
                "version = version + 1 WHERE id = ? AND version = ?",
                (
                    deleted_at.isoformat(),
                    deleted_at.isoformat(),
                    document.updated_by,
                    str(document.id),
                    document.version,
                ),
            )
            if cursor.rowcount == 0:
                raise ConcurrentModificationError(document.id, document.version)
        document.deleted_at = deleted_at
        document.version += 1

    def list_documents(self, criteria: DocumentFilter) -> list[Document]:
        conn = self._db.get_connection()
        query = "SELECT * FROM documents WHERE 1=1"
        params: list[Any] = []

        def _in(column: str, values: Iterable[Any], negate: bool = False) -> None:
            nonlocal query
            values = [v.value for v in values]
            if values:
                op = "NOT IN" if negate else "IN"
                query += f" AND {column} {op} ({', '.join('?' for _ in values)})"
                params.extend(values)

        _in("document_type", criteria.document_types)
        _in("status", criteria.statuses)
        _in("status", criteria.exclude_statuses, negate=True)
        _in("compliance_status", criteria.compliance_statuses)
        if criteria.counterparty_id:
            query += " AND counterparty_id = ?"
            params.append(str(criteria.counterparty_id))
        if criteria.series:
            query += " AND series = ?"
            params.append(criteria.series)
        if criteria.date_from:
            query += " AND issue_date >= ?"
            params.append(criteria.date_from.isoformat())
        if criteria.date_to:
            query += " AND issue_date <= ?"
            params.append(criteria.date_to.isoformat())
        if not criteria.include_deleted:
            query += " AND deleted_at IS NULL"

        query += " ORDER BY issue_date DESC, created_at DESC LIMIT ? OFFSET ?"
        params.extend([criteria.limit, criteria.offset])

        rows = conn.execute(query, params).fetchall()
        return [row_to_document(row, self._load_lines(conn, row["id"])) for row in rows]

    def lock_numbering_scope(
        self, document_type: DocumentType, series: str, fiscal_year: int
    ) -> None:
        # BEGIN IMMEDIATE already holds the database-wide write lock.
        if not self._db.in_transaction:
            raise PersistenceError("Number allocation requires an open transaction")

    def max_sequence_number(
        self, document_type: DocumentType, series: str, fiscal_year: int
    ) -> int:
        conn = self._db.get_connection()
        row = conn.execute(
            """
            SELECT MAX(sequence_number) AS max_seq FROM documents
            WHERE document_type = ? AND series = ? AND fiscal_year = ?
            """,
            (document_type.value, series, fiscal_year),
        ).fetchone()
        return row["max_seq"] or 0

    def add_payment(self, payment: Payment) -> None:
        with self._db.transaction() as conn:
            conn.execute(_insert_sql("payments", PAYMENT_COLUMNS), payment_params(payment))

    def list_payments(self, document_id: UUID) -> list[Payment]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM payments WHERE document_id = ? "
            "ORDER BY payment_date, created_at",
            (str(document_id),),
        ).fetchall()
        return [row_to_payment(row) for row in rows]

    def compliance_totals(self) -> dict[ComplianceStatus, tuple[int, Decimal]]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT compliance_status, total FROM documents "
            "WHERE deleted_at IS NULL AND status != ?",
            (DocumentStatus.DRAFT.value,),
        ).fetchall()
        totals: dict[ComplianceStatus, tuple[int, Decimal]] = {}
        for row in rows:
            status = ComplianceStatus(row["compliance_status"])
            count, amount = totals.get(status, (0, Decimal("0.00")))
            totals[status] = (count + 1, amount + Decimal(row["total"]))
        return totals

    def _insert_lines(self, conn: sqlite3.Connection, document: Document) -> None:
        sql = _insert_sql("document_lines", LINE_COLUMNS)
        for line in document.lines:
            conn.execute(sql, line_params(document.id, line))

    def _load_lines(
        self, conn: sqlite3.Connection, document_id: str
    ) -> list[LineItem]:
        rows = conn.execute(
            "SELECT * FROM document_lines WHERE document_id = ? ORDER BY line_number",
            (document_id,),
        ).fetchall()
        return [row_to_line(row) for row in rows]

    def _raise_if_duplicate_number(
        self, error: sqlite3.IntegrityError, document: Document
    ) -> None:
        if "documents.sequence_number" in str(error):
            logger.warning(
                "duplicate_document_number",
                document_type=document.document_type.value,
                series=document.series,
                fiscal_year=document.fiscal_year,
                sequence_number=document.sequence_number,
            )
            raise DuplicateNumberError(
                document.document_type.value,
                document.series,
                document.fiscal_year or 0,
                document.sequence_number or 0,
            ) from error


class SQLiteAuditRepository(AuditRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, entry: AuditEntry) -> None:
        with self._db.transaction() as conn:
            conn.execute(_insert_sql("audit_log", AUDIT_COLUMNS), audit_params(entry))

    def get(self, entry_id: UUID) -> AuditEntry | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM audit_log WHERE id = ?", (str(entry_id),)
        ).fetchone()
        if row is None:
            return None
        return row_to_audit_entry(row)

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
        conn = self._db.get_connection()
        where, params = self._where(start_date, end_date)
        if entity_type:
            where += " AND entity_type = ?"
            params.append(entity_type.value)
        if entity_id:
            where += " AND entity_id = ?"
            params.append(str(entity_id))
        if actor:
            where += " AND actor = ?"
            params.append(actor)
        if action:
            where += " AND action = ?"
            params.append(action.value)

        rows = conn.execute(
            f"SELECT * FROM audit_log {where} "
            "ORDER BY timestamp DESC, rowid DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [row_to_audit_entry(row) for row in rows]

    def summary(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> AuditLogSummary:
        conn = self._db.get_connection()
        where, params = self._where(start_date, end_date)

        totals = conn.execute(
            f"""
            SELECT COUNT(*) AS cnt,
                   SUM(CASE WHEN outcome = 'failure' THEN 1 ELSE 0 END) AS failures,
                   MIN(timestamp) AS oldest,
                   MAX(timestamp) AS newest
            FROM audit_log {where}
            """,
            params,
        ).fetchone()
        action_rows = conn.execute(
            f"SELECT action, COUNT(*) AS cnt FROM audit_log {where} GROUP BY action",
            params,
        ).fetchall()
        type_rows = conn.execute(
            f"SELECT entity_type, COUNT(*) AS cnt FROM audit_log {where} "
            "GROUP BY entity_type",
            params,
        ).fetchall()

        return AuditLogSummary(
            total_entries=totals["cnt"],
            entries_by_action={AuditAction(r["action"]): r["cnt"] for r in action_rows},
            entries_by_entity_type={
                AuditEntityType(r["entity_type"]): r["cnt"] for r in type_rows
            },
            failures=totals["failures"] or 0,
            oldest_entry=datetime.fromisoformat(totals["oldest"])
            if totals["oldest"]
            else None,
            newest_entry=datetime.fromisoformat(totals["newest"])
            if totals["newest"]
            else None,
        )

    def _where(
        self, start_date: date | None, end_date: date | None
    ) -> tuple[str, list[Any]]:
        where = "WHERE 1=1"
        params: list[Any] = []
        if start_date:
            where += " AND timestamp >= ?"
            params.append(start_date.isoformat())
        if end_date:
            where += " AND timestamp < ?"
            params.append((end_date + timedelta(days=1)).isoformat())
        return where, params
