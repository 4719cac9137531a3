"""Audit trail service for tracking changes to documents and counterparties."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from fiscal_documents.domain.audit import (
    AuditAction,
    AuditEntityType,
    AuditEntry,
    AuditLogSummary,
    AuditOutcome,
    diff_values,
)
from fiscal_documents.logging_config import get_logger
from fiscal_documents.repositories.interfaces import AuditRepository

logger = get_logger(__name__)


class AuditService:
    """Append-only change log.

    Recording is best effort: a failure to write an entry is logged and
    swallowed so that it can never undo or mask the business operation
    that has already been committed.
    """

    def __init__(self, repository: AuditRepository, enabled: bool = True) -> None:
        self._repository = repository
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record(
        self,
        entity_type: AuditEntityType,
        entity_id: UUID,
        actor: str | None,
        action: AuditAction,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        summary: str | None = None,
    ) -> AuditEntry | None:
        if not self._enabled:
            return None
        try:
            old_values, new_values = diff_values(before, after)
            entry = AuditEntry(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                actor=actor,
                old_values=old_values,
                new_values=new_values,
                outcome=outcome,
                change_summary=summary
                or self._summarize(entity_type, action, old_values, new_values),
            )
            self._repository.add(entry)
            return entry
        except Exception:
            logger.exception(
                "audit_record_failed",
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                action=action.value,
            )
            return None

    def _summarize(
        self,
        entity_type: AuditEntityType,
        action: AuditAction,
        old_values: dict[str, Any] | None,
        new_values: dict[str, Any] | None,
    ) -> str:
        if old_values is not None and new_values is not None:
            changed = sorted(set(old_values) | set(new_values))
            if changed:
                return f"{action.value} {entity_type.value}: {', '.join(changed)}"
        return f"{action.value} {entity_type.value}"

    def get_entry(self, entry_id: UUID) -> AuditEntry | None:
        return self._repository.get(entry_id)

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
        """Entries matching every given filter, newest first."""
        return self._repository.query(
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            action=action,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )

    def list_by_entity(
        self,
        entity_type: AuditEntityType,
        entity_id: UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditEntry]:
        return self.query(
            entity_type=entity_type, entity_id=entity_id, limit=limit, offset=offset
        )

    def get_summary(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AuditLogSummary:
        return self._repository.summary(start_date, end_date)
