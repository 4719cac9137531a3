from __future__ import annotations

from abc import ABC, abstractmethod

from fiscal_documents.domain.counterparties import Counterparty
from fiscal_documents.domain.documents import Document


class DocumentRenderer(ABC):
    """Turns a document into a deliverable file (PDF, HTML, ...)."""

    @abstractmethod
    def render(self, document: Document, counterparty: Counterparty) -> bytes:
        pass
