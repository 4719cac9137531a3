"""Audit trail domain models for tracking changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    FINALIZE = "finalize"
    SEND = "send"
    VIEW = "view"
    PAYMENT = "payment"
    CANCEL = "cancel"
    LOCK = "lock"
    UNLOCK = "unlock"
    DUPLICATE = "duplicate"
    COMPLIANCE_SUBMIT = "compliance_submit"
    COMPLIANCE_CANCEL = "compliance_cancel"
    COMPLIANCE_STATUS = "compliance_status"


class AuditEntityType(str, Enum):
    DOCUMENT = "document"
    LINE_ITEM = "line_item"
    PAYMENT = "payment"
    COUNTERPARTY = "counterparty"
    COMPLIANCE = "compliance"


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class AuditEntry:
    entity_type: AuditEntityType
    entity_id: UUID
    action: AuditAction
    id: UUID = field(default_factory=uuid4)
    actor: str | None = None
    timestamp: datetime = field(default_factory=_utc_now)
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    change_summary: str = ""

    @property
    def has_changes(self) -> bool:
        return self.old_values is not None or self.new_values is not None

    @property
    def changed_fields(self) -> list[str]:
        keys = set(self.old_values or {}) | set(self.new_values or {})
        return sorted(keys)


@dataclass
class AuditLogSummary:
    total_entries: int
    entries_by_action: dict[AuditAction, int]
    entries_by_entity_type: dict[AuditEntityType, int]
    failures: int
    oldest_entry: datetime | None
    newest_entry: datetime | None


def diff_values(
    before: dict[str, Any] | None, after: dict[str, Any] | None
) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """Reduce two snapshots to the fields whose values differ."""
    if before is None or after is None:
        return before, after
    changed = sorted(
        key
        for key in set(before) | set(after)
        if before.get(key) != after.get(key)
    )
    return (
        {key: before.get(key) for key in changed},
        {key: after.get(key) for key in changed},
    )
