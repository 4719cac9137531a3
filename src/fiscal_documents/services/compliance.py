"""Compliance submission gateway for the myDATA tax-authority service.

A submission is a three-step affair so that no database transaction is
held open across the network call:

1. claim: compare-and-set the compliance status to ``pending``
2. call: one HTTP request to the authority
3. settle: store the outcome, or revert the claim if the call never
   produced an answer

The claim carries its own timestamp. A claim older than ``claim_timeout``
belongs to a process that died mid-call and may be released.

The document's lifecycle status is never touched here.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from fiscal_documents.domain.audit import (
    AuditAction,
    AuditEntityType,
    AuditOutcome,
)
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import ComplianceRecord, Document
from fiscal_documents.domain.value_objects import (
    REPORTABLE_DOCUMENT_TYPES,
    ZERO,
    ComplianceStatus,
    DocumentStatus,
)
from fiscal_documents.exceptions import (
    ComplianceError,
    ConflictError,
    CounterpartyNotFoundError,
    DocumentNotFoundError,
    FiscalDocumentsError,
    ValidationError,
)
from fiscal_documents.integrations.mydata_client import MyDataClient
from fiscal_documents.integrations.mydata_schema import (
    IssuerProfile,
    RequestedDoc,
    ResponseEntry,
    build_invoices_doc,
)
from fiscal_documents.logging_config import LogContext, get_logger
from fiscal_documents.repositories.interfaces import (
    CounterpartyRepository,
    DocumentFilter,
    DocumentRepository,
)
from fiscal_documents.services.audit import AuditService

logger = get_logger(__name__)


@dataclass
class SubmissionResult:
    document_id: UUID
    success: bool
    status: ComplianceStatus
    document_number: str | None = None
    mark: str | None = None
    uid: str | None = None
    cancellation_mark: str | None = None
    errors: list[dict[str, str]] = field(default_factory=list)


@dataclass
class BulkSubmissionResult:
    results: list[SubmissionResult] = field(default_factory=list)

    @property
    def submitted(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


@dataclass
class StatusResult:
    document_id: UUID
    status: ComplianceStatus
    mark: str | None
    changed: bool = False
    cancellation_mark: str | None = None


@dataclass
class ConnectionCheck:
    success: bool
    environment: str
    message: str | None = None
    error: str | None = None


@dataclass
class ComplianceSummary:
    counts: dict[ComplianceStatus, int]
    totals: dict[ComplianceStatus, Decimal]

    @property
    def total_documents(self) -> int:
        return sum(self.counts.values())

    @property
    def total_amount(self) -> Decimal:
        return sum(self.totals.values(), ZERO)


def _record_snapshot(record: ComplianceRecord) -> dict[str, Any]:
    return {
        "status": record.status.value,
        "mark": record.mark,
        "uid": record.uid,
        "cancellation_mark": record.cancellation_mark,
        "errors": record.errors,
    }


def _error_dicts(entry: ResponseEntry) -> list[dict[str, str]]:
    if entry.errors:
        return [e.to_dict() for e in entry.errors]
    status = entry.status_code or "no status"
    return [{"message": f"Authority answered {status}", "code": ""}]


def _previous_mark(mark: str) -> str:
    # RequestTransmittedDocs returns documents *after* the given mark.
    if mark.isdigit() and int(mark) > 0:
        return str(int(mark) - 1)
    return mark


class ComplianceGateway:
    """Submits documents to myDATA and reconciles the authority's verdict."""

    def __init__(
        self,
        documents: DocumentRepository,
        counterparties: CounterpartyRepository,
        client: MyDataClient,
        audit: AuditService,
        issuer: IssuerProfile | None,
        claim_timeout: timedelta | None = None,
    ) -> None:
        self._documents = documents
        self._counterparties = counterparties
        self._client = client
        self._audit = audit
        self._issuer = issuer
        # Well past the point where the claiming call must have ended
        self._claim_timeout = claim_timeout or timedelta(seconds=client.timeout * 2)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, document_id: UUID, actor: str | None = None) -> SubmissionResult:
        """Transmit a finalized document to the authority.

        Returns:
            The outcome with the authority's mark and UID.

        Raises:
            ValidationError: If the document cannot be submitted. Raised
                before any network traffic.
            ConflictError: If another submission claimed the document first,
                or the document changed after it was read.
            ComplianceError: If the authority rejected the document. The
                errors are stored and the status becomes ``rejected``.
            ExternalServiceError: If the call failed in transit. The claim
                is released so the submission can simply be retried.
        """
        document = self._get_document(document_id)
        if self._release_if_stale(document, actor):
            document = self._get_document(document_id)
        counterparty, issuer = self._validate_submission(document)
        payload = build_invoices_doc(document, counterparty, issuer)

        previous = document.compliance
        claim = ComplianceRecord(
            status=ComplianceStatus.PENDING, submitted_at=datetime.now(UTC)
        )
        # The payload was built from this version; certify nothing newer
        if not self._documents.update_compliance(
            document.id, claim, previous.status, expected_version=document.version
        ):
            raise ConflictError(
                f"Document {document.id} changed while it was being submitted",
                context={
                    "document_id": str(document.id),
                    "expected_version": document.version,
                },
            )
        logger.info(
            "compliance_submission_claimed",
            document_id=str(document.id),
            document_number=document.document_number,
        )

        try:
            entry = self._client.send_invoices(payload)[0]
        except Exception as e:
            self._settle(document.id, previous)
            logger.warning(
                "compliance_submission_reverted",
                document_id=str(document.id),
                error=str(e),
            )
            self._audit.record(
                AuditEntityType.COMPLIANCE,
                document.id,
                actor,
                AuditAction.COMPLIANCE_SUBMIT,
                outcome=AuditOutcome.FAILURE,
                summary=f"submission failed in transit: {e}",
            )
            raise

        if not entry.is_success:
            errors = _error_dicts(entry)
            self._settle(
                document.id,
                ComplianceRecord(status=ComplianceStatus.REJECTED, errors=errors),
            )
            logger.warning(
                "compliance_submission_rejected",
                document_id=str(document.id),
                status_code=entry.status_code,
                errors=errors,
            )
            self._audit.record(
                AuditEntityType.COMPLIANCE,
                document.id,
                actor,
                AuditAction.COMPLIANCE_SUBMIT,
                before=_record_snapshot(previous),
                after={"status": ComplianceStatus.REJECTED.value, "errors": errors},
                outcome=AuditOutcome.FAILURE,
            )
            raise ComplianceError(
                f"Authority rejected document {document.document_number}",
                errors=errors,
                document_id=document.id,
            )

        record = ComplianceRecord(
            status=ComplianceStatus.SUBMITTED,
            mark=entry.invoice_mark,
            uid=entry.invoice_uid,
            submitted_at=datetime.now(UTC),
        )
        self._settle(document.id, record)
        logger.info(
            "compliance_submission_accepted",
            document_id=str(document.id),
            mark=record.mark,
            uid=record.uid,
        )
        self._audit.record(
            AuditEntityType.COMPLIANCE,
            document.id,
            actor,
            AuditAction.COMPLIANCE_SUBMIT,
            before=_record_snapshot(previous),
            after=_record_snapshot(record),
        )
        return SubmissionResult(
            document_id=document.id,
            success=True,
            status=record.status,
            document_number=document.document_number,
            mark=record.mark,
            uid=record.uid,
        )

    def bulk_submit(
        self, document_ids: Iterable[UUID], actor: str | None = None
    ) -> BulkSubmissionResult:
        """Submit each document independently; one failure never stops the rest."""
        bulk = BulkSubmissionResult()
        for document_id in document_ids:
            try:
                with LogContext(document_id=str(document_id)):
                    bulk.results.append(self.submit(document_id, actor))
            except ComplianceError as e:
                bulk.results.append(
                    SubmissionResult(
                        document_id=document_id,
                        success=False,
                        status=ComplianceStatus.REJECTED,
                        errors=e.errors,
                    )
                )
            except FiscalDocumentsError as e:
                bulk.results.append(
                    SubmissionResult(
                        document_id=document_id,
                        success=False,
                        status=self._current_status(document_id),
                        errors=[{"message": e.message, "code": e.error_code}],
                    )
                )
        logger.info(
            "compliance_bulk_submit_completed",
            submitted=bulk.submitted,
            failed=bulk.failed,
        )
        return bulk

    def cancel_submission(
        self, document_id: UUID, actor: str | None = None
    ) -> SubmissionResult:
        """Withdraw a submitted or accepted document at the authority."""
        document = self._get_document(document_id)
        current = document.compliance
        if not current.has_mark or not current.is_certified:
            raise ValidationError(
                f"Document {document.document_number or document.id} has no live "
                f"submission (compliance status '{current.status.value}')",
                field="compliance_status",
            )
        mark = current.mark or ""

        entry = self._client.cancel_invoice(mark)
        if not entry.is_success:
            errors = _error_dicts(entry)
            self._documents.update_compliance(
                document.id, dataclasses.replace(current, errors=errors), current.status
            )
            self._audit.record(
                AuditEntityType.COMPLIANCE,
                document.id,
                actor,
                AuditAction.COMPLIANCE_CANCEL,
                after={"errors": errors},
                outcome=AuditOutcome.FAILURE,
            )
            raise ComplianceError(
                f"Authority refused to cancel mark {current.mark}",
                errors=errors,
                mark=current.mark,
                document_id=document.id,
            )

        record = dataclasses.replace(
            current,
            status=ComplianceStatus.CANCELLED,
            cancellation_mark=entry.cancellation_mark,
            errors=[],
        )
        if not self._documents.update_compliance(document.id, record, current.status):
            raise ConflictError(
                f"Document {document.id} compliance status changed concurrently",
                context={"document_id": str(document.id), "mark": current.mark},
            )
        logger.info(
            "compliance_submission_cancelled",
            document_id=str(document.id),
            mark=current.mark,
            cancellation_mark=record.cancellation_mark,
        )
        self._audit.record(
            AuditEntityType.COMPLIANCE,
            document.id,
            actor,
            AuditAction.COMPLIANCE_CANCEL,
            before=_record_snapshot(current),
            after=_record_snapshot(record),
        )
        return SubmissionResult(
            document_id=document.id,
            success=True,
            status=record.status,
            document_number=document.document_number,
            mark=record.mark,
            uid=record.uid,
            cancellation_mark=record.cancellation_mark,
        )

    def release_stale_claim(
        self, document_id: UUID, actor: str | None = None, force: bool = False
    ) -> bool:
        """Free a document whose submission never settled.

        A pending claim older than the claim timeout goes back to
        ``not_submitted`` so the document can be edited or submitted again.
        ``force`` releases a fresh claim too; use it only when the claiming
        process is known to be gone. Returns whether a claim was released.
        """
        return self._release_if_stale(self._get_document(document_id), actor, force)

    # ------------------------------------------------------------------
    # Status and reporting
    # ------------------------------------------------------------------

    def get_status(self, document_id: UUID, actor: str | None = None) -> StatusResult:
        """Ask the authority about a submitted document and sync the local status."""
        document = self._get_document(document_id)
        if self._release_if_stale(document, actor):
            return StatusResult(
                document.id, ComplianceStatus.NOT_SUBMITTED, None, changed=True
            )
        current = document.compliance
        if current.mark is None:
            return StatusResult(document.id, current.status, None)

        requested = self._client.request_transmitted_docs(mark=_previous_mark(current.mark))
        record = current
        cancellation = requested.find_cancellation(current.mark)
        if cancellation is not None and current.is_certified:
            record = dataclasses.replace(
                current,
                status=ComplianceStatus.CANCELLED,
                cancellation_mark=cancellation.cancellation_mark,
            )
        elif (
            requested.find_invoice(current.mark) is not None
            and current.status == ComplianceStatus.SUBMITTED
        ):
            record = dataclasses.replace(current, status=ComplianceStatus.ACCEPTED)

        if record.status == current.status:
            return StatusResult(
                document.id,
                current.status,
                current.mark,
                cancellation_mark=current.cancellation_mark,
            )

        if not self._documents.update_compliance(document.id, record, current.status):
            raise ConflictError(
                f"Document {document.id} compliance status changed concurrently",
                context={"document_id": str(document.id)},
            )
        logger.info(
            "compliance_status_updated",
            document_id=str(document.id),
            old_status=current.status.value,
            new_status=record.status.value,
        )
        self._audit.record(
            AuditEntityType.COMPLIANCE,
            document.id,
            actor,
            AuditAction.COMPLIANCE_STATUS,
            before=_record_snapshot(current),
            after=_record_snapshot(record),
        )
        return StatusResult(
            document.id,
            record.status,
            record.mark,
            changed=True,
            cancellation_mark=record.cancellation_mark,
        )

    def test_connection(self) -> ConnectionCheck:
        environment = self._client.environment
        if not self._client.has_credentials:
            return ConnectionCheck(
                success=False,
                environment=environment,
                error="myDATA credentials are not configured",
            )
        today = date.today()
        try:
            self._client.request_transmitted_docs(date_from=today, date_to=today)
        except FiscalDocumentsError as e:
            logger.warning("mydata_connection_failed", error=e.message)
            return ConnectionCheck(success=False, environment=environment, error=e.message)
        return ConnectionCheck(
            success=True,
            environment=environment,
            message="myDATA connection successful",
        )

    def list_pending_submissions(self, limit: int = 100) -> list[Document]:
        """Finalized reportable documents that still need to reach the authority."""
        return self._documents.list_documents(
            DocumentFilter(
                document_types=REPORTABLE_DOCUMENT_TYPES,
                exclude_statuses=(DocumentStatus.DRAFT, DocumentStatus.CANCELLED),
                compliance_statuses=(
                    ComplianceStatus.NOT_SUBMITTED,
                    ComplianceStatus.REJECTED,
                ),
                limit=limit,
            )
        )

    def compliance_summary(self) -> ComplianceSummary:
        totals = self._documents.compliance_totals()
        return ComplianceSummary(
            counts={status: count for status, (count, _) in totals.items()},
            totals={status: amount for status, (_, amount) in totals.items()},
        )

    def transmission_log(self, date_from: date, date_to: date) -> RequestedDoc:
        if date_from > date_to:
            raise ValidationError("date_from must not be after date_to", field="date_from")
        return self._client.request_transmitted_docs(date_from=date_from, date_to=date_to)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_document(self, document_id: UUID) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def _current_status(self, document_id: UUID) -> ComplianceStatus:
        document = self._documents.get(document_id)
        if document is None:
            return ComplianceStatus.NOT_SUBMITTED
        return document.compliance.status

    def _validate_submission(
        self, document: Document
    ) -> tuple[Counterparty, IssuerProfile]:
        if document.status == DocumentStatus.DRAFT:
            raise ValidationError(
                "Draft documents cannot be submitted; finalize first", field="status"
            )
        if document.status == DocumentStatus.CANCELLED:
            raise ValidationError(
                "Cancelled documents cannot be submitted", field="status"
            )
        if not document.document_type.is_reportable:
            raise ValidationError(
                f"Document type '{document.document_type.value}' is not reported "
                "to the tax authority",
                field="document_type",
            )
        compliance = document.compliance
        if compliance.status == ComplianceStatus.PENDING:
            raise ConflictError(
                f"Document {document.id} is already being submitted",
                context={"document_id": str(document.id)},
            )
        if not compliance.can_submit:
            raise ValidationError(
                f"Document already has compliance status '{compliance.status.value}'",
                field="compliance_status",
            )
        if not document.lines:
            raise ValidationError("Document has no lines", field="lines")
        if not document.has_number:
            raise ValidationError("Document has no number", field="sequence_number")
        if self._issuer is None:
            raise ValidationError(
                "Issuer VAT number is not configured", field="issuer_vat_number"
            )

        counterparty = self._counterparties.get(document.counterparty_id)
        if counterparty is None:
            raise CounterpartyNotFoundError(document.counterparty_id)
        if not counterparty.has_vat_number:
            raise ValidationError(
                f"Counterparty {counterparty.name} has no VAT number",
                field="vat_number",
            )
        return counterparty, self._issuer

    def _release_if_stale(
        self, document: Document, actor: str | None, force: bool = False
    ) -> bool:
        current = document.compliance
        if current.status != ComplianceStatus.PENDING:
            return False
        claimed_at = current.submitted_at
        # Claims without a timestamp predate claim tracking; only force frees them
        if not force and (
            claimed_at is None or datetime.now(UTC) - claimed_at < self._claim_timeout
        ):
            return False

        released = ComplianceRecord(status=ComplianceStatus.NOT_SUBMITTED)
        if not self._documents.update_compliance(
            document.id,
            released,
            ComplianceStatus.PENDING,
            expected_version=document.version,
        ):
            return False
        logger.warning(
            "compliance_claim_released",
            document_id=str(document.id),
            claimed_at=claimed_at.isoformat() if claimed_at else None,
            forced=force,
        )
        self._audit.record(
            AuditEntityType.COMPLIANCE,
            document.id,
            actor,
            AuditAction.COMPLIANCE_STATUS,
            before=_record_snapshot(current),
            after=_record_snapshot(released),
            summary="released unsettled submission claim",
        )
        return True

    def _settle(self, document_id: UUID, record: ComplianceRecord) -> None:
        if not self._documents.update_compliance(
            document_id, record, ComplianceStatus.PENDING
        ):
            logger.error(
                "compliance_settle_conflict",
                document_id=str(document_id),
                status=record.status.value,
                mark=record.mark,
            )
            raise ConflictError(
                f"Document {document_id} left the pending compliance state",
                context={"document_id": str(document_id), "mark": record.mark},
            )
