"""
services/processor_client.py
----------------------------
HTTP client for the external document processor.

One authenticated POST per hand-off. The processor answers quickly and does
the real work asynchronously, reporting back through
POST /webhooks/document-processing, so the status code returned here is a
diagnostic only.
"""

from typing import Any

import httpx

from chatdesk.core.config import settings
from chatdesk.core.logging import get_logger

logger = get_logger(__name__)


class DocumentProcessorClient:

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = settings.DOCUMENT_PROCESSOR_URL if url is None else url
        self._timeout = timeout or settings.DOCUMENT_PROCESSOR_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._url)

    async def submit(self, payload: dict[str, Any], token: str) -> int:
        """POST the hand-off payload; returns the HTTP status code."""
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            response = await client.post(
                self._url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        logger.info(
            "Document processor answered",
            document_id=payload.get("documentId"),
            status_code=response.status_code,
        )
        return response.status_code


processor_client = DocumentProcessorClient()


def get_processor_client() -> DocumentProcessorClient:
    return processor_client
