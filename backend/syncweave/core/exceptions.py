"""Exceptions raised across syncweave."""

from typing import Optional


class SyncweaveException(Exception):
    """Base exception for syncweave."""

    pass


class NotFoundException(SyncweaveException):
    """Raised when a requested object does not exist."""

    def __init__(self, message: Optional[str] = "Object not found"):
        """Create a new NotFoundException instance.

        Args:
            message: The optional error message
        """
        self.message = message
        super().__init__(self.message)


class ConnectorNotFoundException(NotFoundException):
    """Raised when a trigger targets a connector that no longer exists.

    This is a permanent failure: it is surfaced to the caller of the
    trigger and never retried.
    """

    def __init__(self, connector_id: int):
        """Create a new ConnectorNotFoundException instance.

        Args:
            connector_id: The connector that could not be found
        """
        self.connector_id = connector_id
        super().__init__(f"Connector {connector_id} not found")


class ConnectorPausedException(SyncweaveException):
    """Raised when a sync is requested for a paused connector."""

    def __init__(self, connector_id: int):
        """Create a new ConnectorPausedException instance.

        Args:
            connector_id: The paused connector
        """
        self.connector_id = connector_id
        super().__init__(f"Connector {connector_id} is paused")


class InvalidStreamKeyException(SyncweaveException):
    """Raised when a webhook stream key cannot be parsed for the connector's provider."""

    def __init__(self, stream_key: str, provider: str):
        """Create a new InvalidStreamKeyException instance.

        Args:
            stream_key: The malformed stream key
            provider: The connector provider the key was parsed for
        """
        self.stream_key = stream_key
        self.provider = provider
        super().__init__(f"Invalid stream key {stream_key!r} for provider {provider}")


class UpstreamUnavailableError(SyncweaveException):
    """Raised when the external source answers with a 503-class error.

    Activities let this propagate so Temporal retries them.
    """

    def __init__(self, provider: str, message: str, status_code: int = 503):
        """Create a new UpstreamUnavailableError instance.

        Args:
            provider: The source that is down
            message: Error details from the upstream response
            status_code: The HTTP status returned upstream
        """
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider} is down: {message}")


class SourceApiError(SyncweaveException):
    """Raised when a source API call returns an application-level error.

    Slack answers most failures with HTTP 200 and ``{"ok": false, "error": ...}``;
    ``code`` carries that error string (or the HTTP status for other sources).
    """

    def __init__(self, provider: str, code: str, message: Optional[str] = None):
        """Create a new SourceApiError instance.

        Args:
            provider: The source that returned the error
            code: Provider-specific error code
            message: Optional human-readable message
        """
        self.provider = provider
        self.code = code
        super().__init__(message or f"{provider} API error: {code}")
