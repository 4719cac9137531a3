"""myDATA (AADE) InvoicesDoc building and response parsing.

Documents are serialized to the authority's InvoicesDoc XML. Responses are
read by local element name so that namespace prefixes on the authority side
never matter.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from fiscal_documents.config import Settings
from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import Document, LineItem
from fiscal_documents.domain.value_objects import (
    VAT_RATES,
    ZERO,
    DocumentType,
    IncomeClassification,
    PaymentMethod,
    VatCategory,
    round_money,
)
from fiscal_documents.exceptions import ExternalServiceError, ValidationError

NAMESPACE = "http://www.aade.gr/myDATA/invoice/v1.0"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
SCHEMA_LOCATION = (
    "http://www.aade.gr/myDATA/invoice/v1.0 "
    "https://www.aade.gr/myDATA/invoice/v1.0/InvoicesDoc-v0.6.xsd"
)

INVOICE_TYPE_CODES: dict[DocumentType, str] = {
    DocumentType.INVOICE: "1.1",
    DocumentType.CREDIT_NOTE: "5.1",
    DocumentType.DEBIT_NOTE: "5.2",
    DocumentType.RECEIPT: "11.1",
    DocumentType.PROFORMA: "1.1",
}

VAT_CATEGORY_CODES: dict[VatCategory, int] = {
    VatCategory.NORMAL: 1,
    VatCategory.REDUCED: 2,
    VatCategory.SUPER_REDUCED: 3,
    VatCategory.EXEMPT: 4,
    VatCategory.REVERSE_CHARGE: 6,
}

PAYMENT_METHOD_CODES: dict[PaymentMethod, int] = {
    PaymentMethod.BANK_TRANSFER: 1,
    PaymentMethod.CHECK: 2,
    PaymentMethod.CASH: 3,
    PaymentMethod.CREDIT: 5,
    PaymentMethod.OTHER: 5,
    PaymentMethod.CARD: 7,
}

# Exemption article -> vatExemptionCategory
VAT_EXEMPTION_ARTICLES: dict[str, int] = {
    "3": 1,
    "5": 2,
    "13": 3,
    "14": 4,
    "16": 5,
}
VAT_EXEMPTION_OTHER = 30

GOODS_CATEGORY = "category1_1"
SERVICES_CATEGORY = "category1_3"

_ARTICLE_RE = re.compile(r"(?:άρθρο|αρθρ\.?|article|art\.?)\s*(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class IssuerProfile:
    vat_number: str
    name: str = ""
    country: str = "GR"
    branch: int = 0
    street: str = ""
    street_number: str = ""
    postal_code: str = ""
    city: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> IssuerProfile | None:
        if not settings.issuer_vat_number:
            return None
        return cls(
            vat_number=settings.issuer_vat_number,
            name=settings.issuer_name,
            country=settings.issuer_country,
            branch=settings.issuer_branch,
            street=settings.issuer_street,
            street_number=settings.issuer_street_number,
            postal_code=settings.issuer_postal_code,
            city=settings.issuer_city,
        )


@dataclass
class ResponseError:
    message: str
    code: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "code": self.code}


@dataclass
class ResponseEntry:
    """One ``<response>`` of a ResponseDoc."""

    index: int
    status_code: str
    invoice_uid: str | None = None
    invoice_mark: str | None = None
    cancellation_mark: str | None = None
    errors: list[ResponseError] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.status_code == "Success"


@dataclass
class ParsedLine:
    line_number: int
    net_value: Decimal
    vat_category: int
    vat_amount: Decimal
    income_classification: str | None = None


@dataclass
class ParsedInvoice:
    series: str
    aa: int
    issue_date: date
    invoice_type: str
    issuer_vat: str | None
    counterpart_vat: str | None
    currency: str
    lines: list[ParsedLine]
    total_net_value: Decimal
    total_vat_amount: Decimal
    total_withheld_amount: Decimal
    total_other_taxes_amount: Decimal
    total_gross_value: Decimal
    mark: str | None = None
    uid: str | None = None


@dataclass
class CancelledInvoice:
    invoice_mark: str
    cancellation_mark: str | None
    cancellation_date: date | None


@dataclass
class RequestedDoc:
    invoices: list[ParsedInvoice] = field(default_factory=list)
    cancellations: list[CancelledInvoice] = field(default_factory=list)

    def find_invoice(self, mark: str) -> ParsedInvoice | None:
        return next((i for i in self.invoices if i.mark == mark), None)

    def find_cancellation(self, mark: str) -> CancelledInvoice | None:
        return next((c for c in self.cancellations if c.invoice_mark == mark), None)


# -----------------------------------------------------------------------------
# Code tables
# -----------------------------------------------------------------------------


def invoice_type_code(document_type: DocumentType) -> str:
    try:
        return INVOICE_TYPE_CODES[document_type]
    except KeyError:
        raise ValidationError(
            f"Document type '{document_type.value}' is not reportable",
            field="document_type",
        ) from None


def classification_category(classification: IncomeClassification | str) -> str:
    value = IncomeClassification(classification).value
    if value.startswith("E3_598"):
        return SERVICES_CATEGORY
    return GOODS_CATEGORY


def vat_exemption_category(reason: str | None) -> int | None:
    if not reason:
        return None
    match = _ARTICLE_RE.search(reason)
    if match:
        return VAT_EXEMPTION_ARTICLES.get(match.group(1), VAT_EXEMPTION_OTHER)
    return VAT_EXEMPTION_OTHER


# -----------------------------------------------------------------------------
# Building
# -----------------------------------------------------------------------------


def _q(tag: str) -> str:
    return f"{{{NAMESPACE}}}{tag}"


def _sub(parent: ET.Element, tag: str, text: object | None = None) -> ET.Element:
    element = ET.SubElement(parent, _q(tag))
    if text is not None:
        element.text = str(text)
    return element


def _amount(value: Decimal) -> str:
    return str(round_money(value))


def _party(
    parent: ET.Element,
    tag: str,
    *,
    vat_number: str,
    country: str,
    branch: int,
    name: str,
    street: str,
    number: str,
    postal_code: str,
    city: str,
) -> None:
    party = _sub(parent, tag)
    _sub(party, "vatNumber", vat_number)
    _sub(party, "country", country)
    _sub(party, "branch", branch)
    if name:
        _sub(party, "name", name)
    if street or postal_code or city:
        address = _sub(party, "address")
        if street:
            _sub(address, "street", street)
        if number:
            _sub(address, "number", number)
        _sub(address, "postalCode", postal_code)
        _sub(address, "city", city)


def _line_details(parent: ET.Element, line: LineItem) -> None:
    details = _sub(parent, "invoiceDetails")
    _sub(details, "lineNumber", line.line_number)
    _sub(details, "netValue", _amount(line.net_amount))
    _sub(details, "vatCategory", VAT_CATEGORY_CODES[line.vat_category])
    _sub(details, "vatAmount", _amount(line.vat_amount))
    exemption = vat_exemption_category(line.vat_exemption_reason)
    if exemption is None and line.vat_category == VatCategory.EXEMPT:
        exemption = VAT_EXEMPTION_OTHER
    if exemption is not None and VAT_RATES[line.vat_category] == ZERO:
        _sub(details, "vatExemptionCategory", exemption)
    _sub(details, "lineComments", line.description)
    if line.income_classification is not None:
        classification = _sub(details, "incomeClassification")
        _sub(classification, "classificationType", line.income_classification.value)
        _sub(
            classification,
            "classificationCategory",
            classification_category(line.income_classification),
        )
        _sub(classification, "amount", _amount(line.net_amount))


def aggregate_income_classifications(
    lines: Iterable[LineItem],
) -> list[tuple[str, str, Decimal]]:
    """Sum line net amounts per (classification type, category), first-seen order."""
    totals: dict[tuple[str, str], Decimal] = {}
    for line in lines:
        if line.income_classification is None:
            continue
        key = (
            line.income_classification.value,
            classification_category(line.income_classification),
        )
        totals[key] = totals.get(key, ZERO) + line.net_amount
    return [(kind, category, amount) for (kind, category), amount in totals.items()]


def build_invoice_element(
    document: Document, counterparty: Counterparty, issuer: IssuerProfile
) -> ET.Element:
    if document.sequence_number is None:
        raise ValidationError("Document has no number", field="sequence_number")

    invoice = ET.Element(_q("invoice"))
    _party(
        invoice,
        "issuer",
        vat_number=issuer.vat_number,
        country=issuer.country,
        branch=issuer.branch,
        name=issuer.name,
        street=issuer.street,
        number=issuer.street_number,
        postal_code=issuer.postal_code,
        city=issuer.city,
    )
    _party(
        invoice,
        "counterpart",
        vat_number=counterparty.vat_number or "",
        country=counterparty.country,
        branch=0,
        name=counterparty.name,
        street=counterparty.street,
        number=counterparty.street_number,
        postal_code=counterparty.postal_code,
        city=counterparty.city,
    )

    header = _sub(invoice, "invoiceHeader")
    _sub(header, "series", document.series)
    _sub(header, "aa", document.sequence_number)
    _sub(header, "issueDate", document.issue_date.isoformat())
    _sub(header, "invoiceType", invoice_type_code(document.document_type))
    _sub(header, "vatPaymentSuspension", "false")
    _sub(header, "currency", document.currency)
    if document.currency != "EUR":
        _sub(header, "exchangeRate", document.exchange_rate)

    if document.payment_method is not None:
        methods = _sub(invoice, "paymentMethods")
        detail = _sub(methods, "paymentMethodDetails")
        _sub(detail, "type", PAYMENT_METHOD_CODES[document.payment_method])
        _sub(detail, "amount", _amount(document.total))

    for line in document.lines:
        _line_details(invoice, line)

    summary = _sub(invoice, "invoiceSummary")
    _sub(summary, "totalNetValue", _amount(document.subtotal))
    _sub(summary, "totalVatAmount", _amount(document.vat_amount))
    _sub(summary, "totalWithheldAmount", _amount(document.withholding_amount))
    _sub(summary, "totalFeesAmount", _amount(ZERO))
    _sub(summary, "totalStampDutyAmount", _amount(ZERO))
    _sub(summary, "totalOtherTaxesAmount", _amount(document.other_charges))
    # Line discounts are already netted into netValue.
    _sub(summary, "totalDeductionsAmount", _amount(ZERO))
    _sub(summary, "totalGrossValue", _amount(document.total))
    for kind, category, amount in aggregate_income_classifications(document.lines):
        classification = _sub(summary, "incomeClassification")
        _sub(classification, "classificationType", kind)
        _sub(classification, "classificationCategory", category)
        _sub(classification, "amount", _amount(amount))
    return invoice


def build_invoices_doc(
    document: Document, counterparty: Counterparty, issuer: IssuerProfile
) -> bytes:
    """Serialize ``document`` as a single-invoice InvoicesDoc."""
    ET.register_namespace("", NAMESPACE)
    ET.register_namespace("xsi", XSI_NAMESPACE)
    root = ET.Element(_q("InvoicesDoc"))
    root.set(f"{{{XSI_NAMESPACE}}}schemaLocation", SCHEMA_LOCATION)
    root.append(build_invoice_element(document, counterparty, issuer))
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


def _local(tag: str) -> str:
    return tag.split("}")[-1]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str) -> ET.Element | None:
    return next((c for c in element if _local(c.tag) == name), None)


def _text(element: ET.Element | None, name: str) -> str | None:
    if element is None:
        return None
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def _descendants(element: ET.Element, name: str) -> list[ET.Element]:
    return [e for e in element.iter() if _local(e.tag) == name]


def _decimal(element: ET.Element | None, name: str) -> Decimal:
    value = _text(element, name)
    if value is None:
        return ZERO
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ExternalServiceError(f"Malformed amount in {name}: {value!r}") from None


def _parse_xml(payload: bytes | str) -> ET.Element:
    try:
        return ET.fromstring(payload)
    except ET.ParseError as e:
        raise ExternalServiceError(f"Malformed XML from compliance service: {e}") from e


def parse_response_doc(payload: bytes | str) -> list[ResponseEntry]:
    root = _parse_xml(payload)
    entries: list[ResponseEntry] = []
    for position, response in enumerate(_descendants(root, "response"), start=1):
        errors = [
            ResponseError(
                message=_text(error, "message") or "",
                code=_text(error, "code") or "",
            )
            for errors_element in _children(response, "errors")
            for error in _children(errors_element, "error")
        ]
        index = _text(response, "index")
        entries.append(
            ResponseEntry(
                index=int(index) if index and index.isdigit() else position,
                status_code=_text(response, "statusCode") or "",
                invoice_uid=_text(response, "invoiceUid"),
                invoice_mark=_text(response, "invoiceMark"),
                cancellation_mark=_text(response, "cancellationMark"),
                errors=errors,
            )
        )
    if not entries:
        raise ExternalServiceError("Compliance response contained no result")
    return entries


def parse_invoice_element(invoice: ET.Element) -> ParsedInvoice:
    header = _child(invoice, "invoiceHeader")
    summary = _child(invoice, "invoiceSummary")
    if header is None or summary is None:
        raise ExternalServiceError("Invoice is missing its header or summary")

    lines = []
    for details in _children(invoice, "invoiceDetails"):
        classification = _child(details, "incomeClassification")
        lines.append(
            ParsedLine(
                line_number=int(_text(details, "lineNumber") or 0),
                net_value=_decimal(details, "netValue"),
                vat_category=int(_text(details, "vatCategory") or 0),
                vat_amount=_decimal(details, "vatAmount"),
                income_classification=_text(classification, "classificationType"),
            )
        )

    issue_date = _text(header, "issueDate")
    return ParsedInvoice(
        series=_text(header, "series") or "",
        aa=int(_text(header, "aa") or 0),
        issue_date=date.fromisoformat(issue_date[:10]) if issue_date else date.min,
        invoice_type=_text(header, "invoiceType") or "",
        issuer_vat=_text(_child(invoice, "issuer"), "vatNumber"),
        counterpart_vat=_text(_child(invoice, "counterpart"), "vatNumber"),
        currency=_text(header, "currency") or "EUR",
        lines=lines,
        total_net_value=_decimal(summary, "totalNetValue"),
        total_vat_amount=_decimal(summary, "totalVatAmount"),
        total_withheld_amount=_decimal(summary, "totalWithheldAmount"),
        total_other_taxes_amount=_decimal(summary, "totalOtherTaxesAmount"),
        total_gross_value=_decimal(summary, "totalGrossValue"),
        mark=_text(invoice, "mark"),
        uid=_text(invoice, "uid"),
    )


def parse_invoices_doc(payload: bytes | str) -> list[ParsedInvoice]:
    root = _parse_xml(payload)
    return [parse_invoice_element(i) for i in _descendants(root, "invoice")]


def parse_requested_doc(payload: bytes | str) -> RequestedDoc:
    """Parse a RequestTransmittedDocs answer into invoices and cancellations."""
    root = _parse_xml(payload)
    doc = RequestedDoc()
    for invoice in _descendants(root, "invoice"):
        doc.invoices.append(parse_invoice_element(invoice))
    for cancelled in _descendants(root, "cancelledInvoice"):
        mark = _text(cancelled, "invoiceMark")
        if mark is None:
            continue
        cancellation_date = _text(cancelled, "cancellationDate")
        doc.cancellations.append(
            CancelledInvoice(
                invoice_mark=mark,
                cancellation_mark=_text(cancelled, "cancellationMark"),
                cancellation_date=date.fromisoformat(cancellation_date[:10])
                if cancellation_date
                else None,
            )
        )
    return doc
