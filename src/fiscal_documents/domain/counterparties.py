"""Counterparty (billed party) domain model."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Counterparty:
    """A customer or supplier that documents are issued to.

    The VAT number and country are required by the compliance service
    for every reportable document.
    """

    name: str
    id: UUID = field(default_factory=uuid4)
    vat_number: str | None = None
    country: str = "GR"
    street: str = ""
    street_number: str = ""
    postal_code: str = ""
    city: str = ""
    email: str | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        self.country = self.country.upper()
        if self.vat_number is not None:
            self.vat_number = self.vat_number.strip() or None

    @property
    def has_vat_number(self) -> bool:
        return bool(self.vat_number)

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = _utc_now()

    def activate(self) -> None:
        self.is_active = True
        self.updated_at = _utc_now()
