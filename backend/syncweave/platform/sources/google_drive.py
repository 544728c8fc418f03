"""Google Drive v3 API client."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
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
from syncweave.platform.sync.exceptions import EntityProcessingError

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
GOOGLE_DOC_MIME_TYPE = "application/vnd.google-apps.document"
FILES_PAGE_SIZE = 200
FILE_FIELDS = "id, name, parents, mimeType, createdTime, modifiedTime, trashed, webViewLink"
# Larger bodies are mirrored without content
MAX_TEXT_BYTES = 5 * 1024 * 1024


@dataclass
class ChangesPage:
    """One page of the Drive Changes API."""

    changes: List[Dict[str, Any]]
    next_page_token: Optional[str] = None
    new_start_page_token: Optional[str] = None


class GoogleDriveClient(BaseSourceClient):
    """Google Drive client bound to one OAuth connection."""

    provider = ConnectorProvider.GOOGLE_DRIVE.value
    base_url = settings.GOOGLE_DRIVE_API_BASE_URL

    @retry(
        stop=SOURCE_RETRY_STOP,
        retry=retry_if_rate_limit_or_timeout,
        wait=wait_rate_limit_with_backoff,
        reraise=True,
    )
    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        response = await self._http.get(path, params=clean_params, headers=self.auth_headers)
        if response.status_code == 401:
            await self._token_rejected()
        if response.status_code in (401, 403):
            raise SourceApiError(self.provider, "forbidden", f"Drive denied access to {path}")
        if response.status_code != 404:
            response.raise_for_status()
        return response

    async def list_containers(self) -> List[Container]:
        """List shared drives plus the connection's own drive root."""
        drives: List[Container] = [Container(id="root", name="My Drive", is_member=True)]
        page_token: Optional[str] = None
        while True:
            body = (await self._get("/drives", {"pageSize": 100, "pageToken": page_token})).json()
            drives.extend(
                Container(id=d["id"], name=d.get("name"), is_member=True, raw=d)
                for d in body.get("drives", [])
            )
            page_token = body.get("nextPageToken")
            if not page_token:
                return drives

    async def list_page(self, container_id: str, cursor: Optional[str] = None, **kwargs: Any) -> Page:
        """Fetch one page of the direct children of a folder."""
        body = (
            await self._get(
                "/files",
                {
                    "q": f"'{container_id}' in parents and trashed=false",
                    "corpora": "allDrives",
                    "includeItemsFromAllDrives": "true",
                    "supportsAllDrives": "true",
                    "pageSize": FILES_PAGE_SIZE,
                    "pageToken": cursor,
                    "fields": f"nextPageToken, files({FILE_FIELDS})",
                },
            )
        ).json()
        return Page(items=body.get("files", []), next_cursor=body.get("nextPageToken"))

    async def fetch_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        """File or folder metadata, or None when it does not exist (or is trashed)."""
        response = await self._get(
            f"/files/{object_id}", {"supportsAllDrives": "true", "fields": FILE_FIELDS}
        )
        if response.status_code == 404:
            return None
        file = response.json()
        if file.get("trashed"):
            return None
        return file

    async def join_container(self, container_id: str) -> JoinChannelStatus:
        """Drive has no membership: visibility comes with the OAuth grant."""
        folder = await self.fetch_object(container_id)
        return JoinChannelStatus.ALREADY_MEMBER if folder else JoinChannelStatus.NOT_FOUND

    async def export_text(self, file: Dict[str, Any]) -> Optional[str]:
        """Text content of a Google Doc or plain-text file; None for other types.

        Raises:
            EntityProcessingError: When Drive refuses to export this file
        """
        mime_type = file.get("mimeType", "")
        try:
            if mime_type == GOOGLE_DOC_MIME_TYPE:
                response = await self._get(
                    f"/files/{file['id']}/export", {"mimeType": "text/plain"}
                )
            elif mime_type.startswith("text/"):
                response = await self._get(
                    f"/files/{file['id']}", {"alt": "media", "supportsAllDrives": "true"}
                )
            else:
                return None
        except SourceApiError as e:
            if e.code == "forbidden":
                raise EntityProcessingError(f"Export of {file['id']} refused") from e
            raise
        if response.status_code == 404 or len(response.content) > MAX_TEXT_BYTES:
            return None
        return response.text

    async def get_start_page_token(self) -> str:
        """Token marking "now" in the Changes API."""
        body = (
            await self._get("/changes/startPageToken", {"supportsAllDrives": "true"})
        ).json()
        return body["startPageToken"]

    async def list_changes(self, page_token: str) -> ChangesPage:
        """Fetch one page of changes since ``page_token``."""
        body = (
            await self._get(
                "/changes",
                {
                    "pageToken": page_token,
                    "pageSize": FILES_PAGE_SIZE,
                    "includeItemsFromAllDrives": "true",
                    "supportsAllDrives": "true",
                    "fields": f"nextPageToken, newStartPageToken, changes(fileId, removed, file({FILE_FIELDS}))",
                },
            )
        ).json()
        return ChangesPage(
            changes=body.get("changes", []),
            next_page_token=body.get("nextPageToken"),
            new_start_page_token=body.get("newStartPageToken"),
        )
