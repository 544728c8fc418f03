"""Access tokens from the OAuth connection service.

Token exchange and refresh belong to the connection service; this module only
reads the current access token for a connection. Tokens are cached in Redis for
a short TTL so that the many activities of one sync share a single lookup.
"""

from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from syncweave.core.config import settings
from syncweave.core.exceptions import NotFoundException
from syncweave.core.logging import logger
from syncweave.core.redis_client import redis_client
from syncweave.core.shared_models import ConnectorProvider


class ConnectionCredentialsProvider:
    """Reads provider access tokens by connection id, cache-aside over Redis."""

    TOKEN_KEY_PREFIX = "syncweave:token"

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        """Initialize the provider.

        Args:
            http_client: Optional client (tests inject a mock transport here)
        """
        self._http_client = http_client
        self.logger = logger.with_context(component="connection_credentials")

    def _integration_id(self, provider: ConnectorProvider) -> str:
        if provider == ConnectorProvider.SLACK:
            return settings.SLACK_INTEGRATION_ID
        return settings.GOOGLE_DRIVE_INTEGRATION_ID

    def _token_cache_key(self, connection_id: str, provider: ConnectorProvider) -> str:
        """Redis key of a connection's cached token."""
        return f"{self.TOKEN_KEY_PREFIX}:{self._integration_id(provider)}:{connection_id}"

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=settings.CONNECTION_SERVICE_URL,
                timeout=settings.SOURCE_HTTP_TIMEOUT_SECONDS,
            )
        return self._http_client

    @retry(
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _fetch_access_token(self, connection_id: str, integration_id: str) -> str:
        headers = {}
        if settings.CONNECTION_SERVICE_SECRET_KEY:
            headers["Authorization"] = f"Bearer {settings.CONNECTION_SERVICE_SECRET_KEY}"
        response = await self._client().get(
            f"/connection/{connection_id}",
            params={"provider_config_key": integration_id},
            headers=headers,
        )
        if response.status_code == 404:
            raise NotFoundException(f"Connection {connection_id} not found")
        response.raise_for_status()
        credentials = response.json().get("credentials") or {}
        access_token = credentials.get("access_token")
        if not access_token:
            raise NotFoundException(f"Connection {connection_id} has no access token")
        return access_token

    async def _get_cached(self, cache_key: str) -> Optional[str]:
        try:
            cached = await redis_client.client.get(cache_key)
        except Exception as e:
            # Fall back to the connection service
            self.logger.error(f"Error reading access token from cache: {e}")
            return None
        if cached is None:
            return None
        return cached.decode("utf-8") if isinstance(cached, bytes) else cached

    async def _set_cached(self, cache_key: str, access_token: str) -> None:
        try:
            await redis_client.client.setex(
                cache_key, settings.ACCESS_TOKEN_CACHE_TTL_SECONDS, access_token
            )
        except Exception as e:
            self.logger.warning(f"Error caching access token: {e}")

    async def get_access_token(self, connection_id: str, provider: ConnectorProvider) -> str:
        """Get the current access token of a connection.

        Raises:
            NotFoundException: If the connection (or its token) does not exist
        """
        cache_key = self._token_cache_key(connection_id, provider)
        cached = await self._get_cached(cache_key)
        if cached:
            self.logger.debug(f"Cache HIT: access token of connection {connection_id}")
            return cached

        self.logger.debug(f"Cache MISS: fetching access token for connection {connection_id}")
        access_token = await self._fetch_access_token(
            connection_id, self._integration_id(provider)
        )
        await self._set_cached(cache_key, access_token)
        return access_token

    async def invalidate(self, connection_id: str, provider: ConnectorProvider) -> bool:
        """Forget a cached token after the provider rejected it.

        Returns:
            True if the cache entry was removed (or absent), False on Redis errors
        """
        try:
            await redis_client.client.delete(self._token_cache_key(connection_id, provider))
        except Exception as e:
            self.logger.warning(f"Error invalidating access token of {connection_id}: {e}")
            return False
        self.logger.info(f"Invalidated cached access token of connection {connection_id}")
        return True


connection_credentials = ConnectionCredentialsProvider()
