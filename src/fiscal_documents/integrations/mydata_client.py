"""HTTP transport for the myDATA REST API."""

from __future__ import annotations

from datetime import date
from typing import Any

import httpx

from fiscal_documents.config import Settings
from fiscal_documents.exceptions import ExternalServiceError, ExternalTimeoutError
from fiscal_documents.integrations.mydata_schema import (
    RequestedDoc,
    ResponseEntry,
    parse_requested_doc,
    parse_response_doc,
)
from fiscal_documents.logging_config import get_logger

logger = get_logger(__name__)

SEND_INVOICES = "/SendInvoices"
CANCEL_INVOICE = "/CancelInvoice"
REQUEST_TRANSMITTED_DOCS = "/RequestTransmittedDocs"


class MyDataClient:
    """Thin wrapper over ``httpx.Client`` that speaks myDATA XML.

    Transport problems surface as ExternalTimeoutError / ExternalServiceError;
    authority-side rejections come back as parsed ResponseEntry objects for
    the caller to act on.
    """

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._timeout = settings.mydata_timeout_seconds
        self._client = client or httpx.Client(
            base_url=settings.effective_mydata_url,
            timeout=self._timeout,
        )
        self._headers = {
            "aade-user-id": settings.mydata_user_id or "",
            "Ocp-Apim-Subscription-Key": settings.mydata_subscription_key or "",
            "Content-Type": "application/xml",
        }

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def environment(self) -> str:
        return self._settings.mydata_environment.value

    @property
    def has_credentials(self) -> bool:
        return bool(self._settings.mydata_user_id and self._settings.mydata_subscription_key)

    def send_invoices(self, invoices_doc: bytes) -> list[ResponseEntry]:
        response = self._request(
            "POST", SEND_INVOICES, "send_invoices", content=invoices_doc
        )
        return parse_response_doc(response.content)

    def cancel_invoice(self, mark: str) -> ResponseEntry:
        response = self._request(
            "POST", CANCEL_INVOICE, "cancel_invoice", params={"mark": mark}
        )
        return parse_response_doc(response.content)[0]

    def request_transmitted_docs(
        self,
        mark: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> RequestedDoc:
        params: dict[str, str] = {"mark": mark or "0"}
        if date_from:
            params["dateFrom"] = date_from.isoformat()
        if date_to:
            params["dateTo"] = date_to.isoformat()
        response = self._request(
            "GET", REQUEST_TRANSMITTED_DOCS, "request_transmitted_docs", params=params
        )
        return parse_requested_doc(response.content)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> MyDataClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _request(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> httpx.Response:
        logger.info(
            "mydata_request",
            method=method,
            path=path,
            environment=self.environment,
        )
        try:
            response = self._client.request(
                method, path, headers=self._headers, **kwargs
            )
        except httpx.TimeoutException as e:
            logger.warning("mydata_timeout", operation=operation, timeout=self._timeout)
            raise ExternalTimeoutError(operation, self._timeout) from e
        except httpx.TransportError as e:
            logger.warning("mydata_transport_error", operation=operation, error=str(e))
            raise ExternalServiceError(f"{operation} failed: {e}") from e

        logger.info(
            "mydata_response",
            operation=operation,
            status_code=response.status_code,
        )
        if response.status_code in (401, 403):
            raise ExternalServiceError(
                "Compliance service rejected the credentials",
                http_status=response.status_code,
            )
        if response.is_error:
            logger.warning(
                "mydata_http_error",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ExternalServiceError(
                f"{operation} returned HTTP {response.status_code}",
                http_status=response.status_code,
            )
        return response
