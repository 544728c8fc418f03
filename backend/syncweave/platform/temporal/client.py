"""Shared Temporal client."""

import asyncio
from typing import Optional

from temporalio.client import Client

from syncweave.core.config import settings
from syncweave.core.logging import logger


class TemporalClient:
    """Lazily connected, process-wide Temporal client."""

    def __init__(self) -> None:
        """Initialize without connecting."""
        self._client: Optional[Client] = None
        self._lock = asyncio.Lock()

    async def get_client(self) -> Client:
        """Get the client, connecting on first use."""
        async with self._lock:
            if self._client is None:
                logger.info(
                    f"Connecting to Temporal at {settings.temporal_address} "
                    f"(namespace: {settings.TEMPORAL_NAMESPACE})"
                )
                self._client = await Client.connect(
                    settings.temporal_address, namespace=settings.TEMPORAL_NAMESPACE
                )
            return self._client

    def set_client(self, client: Client) -> None:
        """Use an already connected client (tests pass the test environment's here)."""
        self._client = client

    async def close(self) -> None:
        """Drop the client; the SDK closes the connection when it is collected."""
        self._client = None


temporal_client = TemporalClient()
