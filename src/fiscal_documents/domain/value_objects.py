from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from fiscal_documents.exceptions import ValidationError

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


class Currency(str, Enum):
    EUR = "EUR"
    USD = "USD"
    GBP = "GBP"
    CHF = "CHF"
    BGN = "BGN"
    RON = "RON"
    PLN = "PLN"
    CZK = "CZK"
    SEK = "SEK"
    DKK = "DKK"
    NOK = "NOK"
    TRY = "TRY"


class DocumentType(str, Enum):
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    RECEIPT = "receipt"
    PROFORMA = "proforma"
    QUOTE = "quote"
    ORDER = "order"
    DELIVERY_NOTE = "delivery_note"

    @property
    def is_reportable(self) -> bool:
        """Whether the tax authority accepts this type of document."""
        return self in REPORTABLE_DOCUMENT_TYPES


REPORTABLE_DOCUMENT_TYPES = frozenset(
    {
        DocumentType.INVOICE,
        DocumentType.CREDIT_NOTE,
        DocumentType.DEBIT_NOTE,
        DocumentType.RECEIPT,
        DocumentType.PROFORMA,
    }
)


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class ComplianceStatus(str, Enum):
    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class VatCategory(str, Enum):
    NORMAL = "normal"
    REDUCED = "reduced"
    SUPER_REDUCED = "super_reduced"
    EXEMPT = "exempt"
    REVERSE_CHARGE = "reverse_charge"


# Reverse charge is 0% locally; the buyer accounts for the VAT.
VAT_RATES: dict[VatCategory, Decimal] = {
    VatCategory.NORMAL: Decimal("24"),
    VatCategory.REDUCED: Decimal("13"),
    VatCategory.SUPER_REDUCED: Decimal("6"),
    VatCategory.EXEMPT: Decimal("0"),
    VatCategory.REVERSE_CHARGE: Decimal("0"),
}


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CREDIT = "credit"
    OTHER = "other"


class IncomeClassification(str, Enum):
    SALE_OF_GOODS = "E3_561_001"
    SALE_OF_GOODS_INTRA_EU = "E3_561_002"
    SALE_OF_GOODS_THIRD_COUNTRY = "E3_561_003"
    RETAIL_SALE_PROFESSIONALS = "E3_561_004"
    RETAIL_SALE_PRIVATE = "E3_561_005"
    SALE_OF_EXCISE_GOODS = "E3_562_001"
    RETAIL_SALE = "E3_563_001"
    SALE_OF_FIXED_ASSETS = "E3_564_001"
    SALE_ON_BEHALF_OF_THIRD_PARTIES = "E3_881_001"
    SALE_OF_SERVICES = "E3_598_001"


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value: Decimal | int | float | str | None, field: str) -> Decimal:
    """Coerce user input to Decimal, rejecting junk with a field-level error."""
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(
                f"{field} must be a number, got {value!r}", field=field
            ) from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    return result


__all__ = [
    "Currency",
    "DocumentType",
    "REPORTABLE_DOCUMENT_TYPES",
    "DocumentStatus",
    "ComplianceStatus",
    "VatCategory",
    "VAT_RATES",
    "PaymentMethod",
    "IncomeClassification",
    "TWO_PLACES",
    "ZERO",
    "HUNDRED",
    "round_money",
    "to_decimal",
]
