"""Counterparty registry service."""

from __future__ import annotations

from uuid import UUID

from fiscal_documents.domain.audit import AuditAction, AuditEntityType
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.exceptions import (
    ConflictError,
    CounterpartyNotFoundError,
    ValidationError,
)
from fiscal_documents.logging_config import get_logger
from fiscal_documents.repositories.interfaces import CounterpartyRepository
from fiscal_documents.services.audit import AuditService

logger = get_logger(__name__)


def _snapshot(counterparty: Counterparty) -> dict[str, object]:
    return {
        "name": counterparty.name,
        "vat_number": counterparty.vat_number,
        "country": counterparty.country,
        "street": counterparty.street,
        "street_number": counterparty.street_number,
        "postal_code": counterparty.postal_code,
        "city": counterparty.city,
        "email": counterparty.email,
        "is_active": counterparty.is_active,
    }


class CounterpartyService:
    def __init__(self, repository: CounterpartyRepository, audit: AuditService) -> None:
        self._repository = repository
        self._audit = audit

    def create(self, counterparty: Counterparty, actor: str | None = None) -> Counterparty:
        """Register a counterparty.

        Raises:
            ValidationError: If the name or country is malformed.
            ConflictError: If an active counterparty already uses the VAT number.
        """
        if not counterparty.name or not counterparty.name.strip():
            raise ValidationError("Counterparty name is required", field="name")
        if len(counterparty.country) != 2 or not counterparty.country.isalpha():
            raise ValidationError(
                f"Country must be a two-letter code, got {counterparty.country!r}",
                field="country",
            )
        if counterparty.vat_number:
            existing = self._repository.get_by_vat_number(counterparty.vat_number)
            if existing is not None and existing.is_active:
                raise ConflictError(
                    f"VAT number {counterparty.vat_number} is already registered",
                    context={
                        "vat_number": counterparty.vat_number,
                        "counterparty_id": str(existing.id),
                    },
                )

        self._repository.add(counterparty)
        logger.info(
            "counterparty_created",
            counterparty_id=str(counterparty.id),
            vat_number=counterparty.vat_number,
        )
        self._audit.record(
            AuditEntityType.COUNTERPARTY,
            counterparty.id,
            actor,
            AuditAction.CREATE,
            after=_snapshot(counterparty),
        )
        return counterparty

    def get(self, counterparty_id: UUID) -> Counterparty:
        counterparty = self._repository.get(counterparty_id)
        if counterparty is None:
            raise CounterpartyNotFoundError(counterparty_id)
        return counterparty

    def find_by_vat(self, vat_number: str) -> Counterparty | None:
        return self._repository.get_by_vat_number(vat_number.strip())

    def list_counterparties(self, active_only: bool = True) -> list[Counterparty]:
        return list(self._repository.list_all(active_only=active_only))

    def deactivate(self, counterparty_id: UUID, actor: str | None = None) -> Counterparty:
        counterparty = self.get(counterparty_id)
        if not counterparty.is_active:
            return counterparty
        before = _snapshot(counterparty)
        counterparty.deactivate()
        self._repository.update(counterparty)
        logger.info("counterparty_deactivated", counterparty_id=str(counterparty.id))
        self._audit.record(
            AuditEntityType.COUNTERPARTY,
            counterparty.id,
            actor,
            AuditAction.UPDATE,
            before=before,
            after=_snapshot(counterparty),
        )
        return counterparty
