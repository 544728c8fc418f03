"""Client for the downstream document index.

Documents are keyed by ``(data_source_id, document_id)``. Upserting a document
replaces any previous version, and deleting an unknown document succeeds, so
both calls are safe to repeat when an activity is retried.
"""

from typing import Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from syncweave.core.config import settings
from syncweave.core.logging import ContextualLogger
from syncweave.core.logging import logger as default_logger
from syncweave.schemas.document import Document


def _is_retryable(exception: BaseException) -> bool:
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code == 429 or exception.response.status_code >= 500
    return isinstance(exception, httpx.TransportError)


_index_retry = retry(
    stop=stop_after_attempt(4),
    retry=retry_if_exception(_is_retryable),
    wait=wait_exponential(multiplier=1, min=1, max=15),
    reraise=True,
)


class DocumentIndexClient:
    """HTTP client for the document index."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the client.

        Args:
            http_client: Optional pre-built client (tests inject transports here)
            logger: Optional contextual logger
        """
        self._http_client = http_client
        self._logger = logger

    @property
    def logger(self) -> ContextualLogger:
        """Get the logger, falling back to the default one."""
        return self._logger or default_logger

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {}
            if settings.DOCUMENT_INDEX_API_KEY:
                headers["Authorization"] = f"Bearer {settings.DOCUMENT_INDEX_API_KEY}"
            self._http_client = httpx.AsyncClient(
                base_url=settings.DOCUMENT_INDEX_URL,
                headers=headers,
                timeout=settings.SOURCE_HTTP_TIMEOUT_SECONDS,
            )
        return self._http_client

    @staticmethod
    def _path(data_source_id: str, document_id: str) -> str:
        return f"/data_sources/{data_source_id}/documents/{document_id}"

    @_index_retry
    async def upsert_document(self, document: Document) -> None:
        """Create or replace a document."""
        response = await self._client().post(
            self._path(document.data_source_id, document.document_id),
            json=document.model_dump(mode="json", exclude={"data_source_id", "document_id"}),
        )
        response.raise_for_status()
        self.logger.debug(f"Upserted document {document.document_id}")

    @_index_retry
    async def delete_document(self, data_source_id: str, document_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""
        response = await self._client().delete(self._path(data_source_id, document_id))
        if response.status_code == 404:
            return
        response.raise_for_status()
        self.logger.debug(f"Deleted document {document_id}")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


document_index = DocumentIndexClient()
