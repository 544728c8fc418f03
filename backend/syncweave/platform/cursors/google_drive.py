"""Position of a Google Drive connector in the Changes API."""

from pydantic import Field

from ._base import BaseCursor

# sync_cursor stream key holding the Changes API position
CHANGES_STREAM_KEY = "changes"


class GoogleDriveCursor(BaseCursor):
    """Changes API page token of a connector.

    Written by the full sync with the token taken before its folder walk, then
    advanced by the incremental sync after every applied page.
    """

    start_page_token: str = Field(
        default="",
        description="Token of the next Changes API page to apply",
    )
