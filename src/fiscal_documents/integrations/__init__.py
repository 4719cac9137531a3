from fiscal_documents.integrations.mydata_client import MyDataClient
from fiscal_documents.integrations.mydata_schema import (
    IssuerProfile,
    build_invoices_doc,
    parse_invoices_doc,
    parse_requested_doc,
    parse_response_doc,
)

__all__ = [
    "IssuerProfile",
    "MyDataClient",
    "build_invoices_doc",
    "parse_invoices_doc",
    "parse_requested_doc",
    "parse_response_doc",
]
