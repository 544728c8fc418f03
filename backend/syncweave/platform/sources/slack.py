"""Slack Web API client.

Slack answers most failures with HTTP 200 and ``{"ok": false, "error": ...}``;
those are raised as SourceApiError carrying the Slack error code.
"""

from typing import Any, Dict, List, Optional

from tenacity import retry

from syncweave.core.config import settings
from syncweave.core.exceptions import SourceApiError
from syncweave.core.shared_models import ConnectorProvider, JoinChannelStatus
from syncweave.platform.sources._base import BaseSourceClient, Container, Page
from syncweave.platform.sources.retry_helpers import (
    SOURCE_RETRY_STOP,
    retry_if_rate_limit_or_timeout,
    wait_rate_limit_with_backoff,
)

MESSAGES_PAGE_SIZE = 100
CONVERSATIONS_PAGE_SIZE = 999
USERS_PAGE_SIZE = 200

NOT_FOUND_ERRORS = frozenset({"channel_not_found", "thread_not_found"})
FORBIDDEN_ERRORS = frozenset(
    {"missing_scope", "is_archived", "method_not_supported_for_channel_type", "not_allowed"}
)
TOKEN_REJECTED_ERRORS = frozenset(
    {"invalid_auth", "not_authed", "token_expired", "token_revoked", "account_inactive"}
)


class SlackClient(BaseSourceClient):
    """Slack client bound to one workspace installation."""

    provider = ConnectorProvider.SLACK.value
    base_url = settings.SLACK_API_BASE_URL

    @retry(
        stop=SOURCE_RETRY_STOP,
        retry=retry_if_rate_limit_or_timeout,
        wait=wait_rate_limit_with_backoff,
        reraise=True,
    )
    async def _call(
        self, method: str, params: Optional[Dict[str, Any]] = None, http_method: str = "GET"
    ) -> Dict[str, Any]:
        """Call a Web API method and return the JSON body.

        Raises:
            httpx.HTTPStatusError: On non-2xx responses (429s are retried first)
            UpstreamUnavailableError: When Slack is down
            SourceApiError: When Slack answers ``ok: false``
        """
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        if http_method == "GET":
            response = await self._http.get(
                f"/{method}", params=clean_params, headers=self.auth_headers
            )
        else:
            response = await self._http.post(
                f"/{method}", data=clean_params, headers=self.auth_headers
            )
        if response.status_code == 401:
            await self._token_rejected()
        response.raise_for_status()
        body = response.json()
        if not body.get("ok", False):
            error = body.get("error", "unknown_error")
            if error in TOKEN_REJECTED_ERRORS:
                await self._token_rejected()
            raise SourceApiError(self.provider, error)
        return body

    async def _paginate(
        self, method: str, key: str, params: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            body = await self._call(method, {**params, "cursor": cursor})
            items.extend(body.get(key, []))
            cursor = (body.get("response_metadata") or {}).get("next_cursor") or None
            if not cursor:
                return items

    async def list_containers(self) -> List[Container]:
        """List public and private channels (archived excluded)."""
        channels = await self._paginate(
            "conversations.list",
            "channels",
            {
                "types": "public_channel,private_channel",
                "exclude_archived": "true",
                "limit": CONVERSATIONS_PAGE_SIZE,
            },
        )
        return [
            Container(id=c.get("id"), name=c.get("name"), is_member=bool(c.get("is_member")), raw=c)
            for c in channels
        ]

    async def list_page(
        self,
        container_id: str,
        cursor: Optional[str] = None,
        oldest_ts: Optional[str] = None,
        latest_ts: Optional[str] = None,
        limit: int = MESSAGES_PAGE_SIZE,
    ) -> Page:
        """Fetch one page of channel history.

        Args:
            container_id: Channel ID
            cursor: Slack pagination cursor from the previous page
            oldest_ts: Only messages after this Slack timestamp
            latest_ts: Only messages before this Slack timestamp
            limit: Page size
        """
        body = await self._call(
            "conversations.history",
            {
                "channel": container_id,
                "cursor": cursor,
                "oldest": oldest_ts,
                "latest": latest_ts,
                "limit": limit,
                "inclusive": "true" if oldest_ts or latest_ts else None,
            },
        )
        next_cursor = (body.get("response_metadata") or {}).get("next_cursor") or None
        return Page(items=body.get("messages", []), next_cursor=next_cursor)

    async def list_replies(self, channel_id: str, thread_ts: str) -> List[Dict[str, Any]]:
        """All messages of a thread, parent first."""
        return await self._paginate(
            "conversations.replies",
            "messages",
            {"channel": channel_id, "ts": thread_ts, "limit": MESSAGES_PAGE_SIZE},
        )

    async def list_users(self) -> List[Dict[str, Any]]:
        """The workspace user directory."""
        return await self._paginate("users.list", "members", {"limit": USERS_PAGE_SIZE})

    async def fetch_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        """Channel info, or None when the channel does not exist."""
        try:
            body = await self._call("conversations.info", {"channel": object_id})
        except SourceApiError as e:
            if e.code in NOT_FOUND_ERRORS:
                return None
            raise
        return body.get("channel")

    async def join_container(self, container_id: str) -> JoinChannelStatus:
        """Join a channel unless the bot is already a member."""
        channel = await self.fetch_object(container_id)
        if channel is None:
            return JoinChannelStatus.NOT_FOUND
        if channel.get("is_member"):
            return JoinChannelStatus.ALREADY_MEMBER

        try:
            body = await self._call("conversations.join", {"channel": container_id}, "POST")
        except SourceApiError as e:
            if e.code in NOT_FOUND_ERRORS:
                return JoinChannelStatus.NOT_FOUND
            if e.code in FORBIDDEN_ERRORS:
                self.logger.warning(f"Cannot join channel {container_id}: {e.code}")
                return JoinChannelStatus.FORBIDDEN
            raise
        if body.get("warning") == "already_in_channel":
            return JoinChannelStatus.ALREADY_MEMBER
        return JoinChannelStatus.JOINED
