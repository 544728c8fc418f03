"""SourceHttpClient - httpx client wrapper that classifies upstream outages.

Source clients talk to their provider through this wrapper so that a provider
being down surfaces as a typed UpstreamUnavailableError (retryable at the
activity level) instead of a generic HTTP error.
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx

from syncweave.core.exceptions import UpstreamUnavailableError
from syncweave.core.logging import ContextualLogger

UPSTREAM_UNAVAILABLE_STATUS_CODES = frozenset({502, 503, 504})


class SourceHttpClient:
    """Wraps an httpx.AsyncClient and translates 503-class responses.

    Exposes the subset of the httpx.AsyncClient interface the source clients
    use, delegating everything else to the wrapped client.
    """

    def __init__(
        self,
        wrapped_client: httpx.AsyncClient,
        provider: str,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize wrapper around an existing HTTP client.

        Args:
            wrapped_client: The client to wrap
            provider: Source identifier used in error messages (e.g. "slack")
            logger: Optional contextual logger
        """
        self._client = wrapped_client
        self._provider = provider
        self._logger = logger

    def _raise_if_upstream_unavailable(self, response: httpx.Response) -> None:
        if response.status_code in UPSTREAM_UNAVAILABLE_STATUS_CODES:
            message = f"HTTP {response.status_code} on {response.request.method} {response.request.url}"
            if self._logger:
                self._logger.warning(f"[SourceHttpClient] {self._provider} unavailable: {message}")
            raise UpstreamUnavailableError(
                provider=self._provider, message=message, status_code=response.status_code
            )

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make an HTTP request.

        Raises:
            UpstreamUnavailableError: If the provider answered with a 503-class status
        """
        response = await self._client.request(method, url, **kwargs)
        self._raise_if_upstream_unavailable(response)
        return response

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Make GET request through wrapper."""
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        """Make POST request through wrapper."""
        return await self.request("POST", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> httpx.Response:
        """Make DELETE request through wrapper."""
        return await self.request("DELETE", url, **kwargs)

    def stream(self, method: str, url: str, **kwargs):
        """Stream request through wrapper (returns async context manager)."""
        return self._stream_context_manager(method, url, **kwargs)

    @asynccontextmanager
    async def _stream_context_manager(self, method: str, url: str, **kwargs):
        async with self._client.stream(method, url, **kwargs) as response:
            self._raise_if_upstream_unavailable(response)
            yield response

    async def __aenter__(self):
        """Enter async context manager."""
        await self._client.__aenter__()
        return self

    async def __aexit__(self, *args):
        """Exit async context manager."""
        await self._client.__aexit__(*args)

    async def aclose(self):
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        """Check if client is closed."""
        return self._client.is_closed
