"""Cursor schemas persisted in the sync_cursor table."""

from ._base import BaseCursor
from .google_drive import GoogleDriveCursor

__all__ = ["BaseCursor", "GoogleDriveCursor"]
