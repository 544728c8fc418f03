"""Base class for external source clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional

import httpx

from syncweave.core.config import settings
from syncweave.core.logging import ContextualLogger, logger
from syncweave.core.shared_models import JoinChannelStatus
from syncweave.platform.http_client.source_http_client import SourceHttpClient


@dataclass
class Container:
    """A container entity upstream (Slack channel, Drive shared drive or folder)."""

    id: str
    name: Optional[str]
    is_member: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Page:
    """One page of items inside a container."""

    items: List[Dict[str, Any]]
    next_cursor: Optional[str] = None


class BaseSourceClient(ABC):
    """Thin client for one provider, bound to one connection's credentials.

    Subclasses implement paginated listing, object fetch and container join.
    ``fetch_object`` returns None for objects that do not exist upstream, so
    callers can treat "not found" as a typed result rather than an error.
    """

    provider: ClassVar[str]
    base_url: ClassVar[str]

    def __init__(
        self,
        access_token: str,
        http_client: Optional[SourceHttpClient] = None,
        contextual_logger: Optional[ContextualLogger] = None,
        on_token_rejected: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        """Initialize the client.

        Args:
            access_token: OAuth access token of the connection
            http_client: Optional pre-built HTTP client (tests inject transports here)
            contextual_logger: Logger carrying connector dimensions
            on_token_rejected: Called when the provider rejects the access token
        """
        self.logger = contextual_logger or logger.with_context(provider=self.provider)
        self._access_token = access_token
        self._on_token_rejected = on_token_rejected
        self._http = http_client or SourceHttpClient(
            httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.SOURCE_HTTP_TIMEOUT_SECONDS,
            ),
            provider=self.provider,
            logger=self.logger,
        )

    @property
    def auth_headers(self) -> Dict[str, str]:
        """Authorization header for the provider API."""
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _token_rejected(self) -> None:
        self.logger.warning(f"{self.provider} rejected the access token")
        if self._on_token_rejected is not None:
            await self._on_token_rejected()

    @abstractmethod
    async def list_containers(self) -> List[Container]:
        """List every container visible to the connection, paginating to exhaustion."""

    @abstractmethod
    async def list_page(
        self, container_id: str, cursor: Optional[str] = None, **kwargs: Any
    ) -> Page:
        """Fetch one page of items in a container, starting at ``cursor``."""

    @abstractmethod
    async def fetch_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one object, or None if it does not exist upstream."""

    @abstractmethod
    async def join_container(self, container_id: str) -> JoinChannelStatus:
        """Make the integration a member of a container (no-op if already one)."""

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self):
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args):
        """Exit async context manager."""
        await self.aclose()
