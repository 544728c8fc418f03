"""Sync-specific exceptions for error handling inside activities."""


class EntityProcessingError(Exception):
    """Raised when an individual resource cannot be processed.

    This is a recoverable error: the activity logs it and continues with the
    other resources of the page.

    Examples:
    - Message without a timestamp
    - File whose export failed with 404 between listing and download
    """

    pass


class SyncFailureError(Exception):
    """Raised when a critical error occurs that should fail the whole activity.

    Temporal retries the activity per its retry policy; once attempts are
    exhausted the workflow run fails.

    Examples:
    - Connector missing from the mirror store
    - Provider answered with an unexpected payload
    """

    pass
