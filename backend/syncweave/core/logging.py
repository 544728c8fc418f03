"""Logging for syncweave.

Every log line can carry dimensions (connector id, provider, workflow id...)
so that one connector's sync can be followed across activities and workers.
"""

import logging
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter

from syncweave.core.config import settings

_LOCAL_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class _DimensionsFormatter(logging.Formatter):
    """Human-readable formatter that appends dimensions as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        dimensions = getattr(record, "dimensions", None)
        if not dimensions:
            return base
        rendered = " ".join(f"{k}={v}" for k, v in dimensions.items())
        return f"{base} [{rendered}]"


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that attaches a dict of dimensions to every record."""

    def __init__(self, logger: logging.Logger, dimensions: Optional[Dict[str, Any]] = None):
        """Initialize the adapter.

        Args:
            logger: The underlying stdlib logger
            dimensions: Key/value pairs added to every record
        """
        super().__init__(logger, {})
        self.dimensions: Dict[str, Any] = dict(dimensions or {})

    def process(self, msg: Any, kwargs: Any):
        """Merge dimensions into the record's extra."""
        extra = dict(kwargs.get("extra") or {})
        extra["dimensions"] = {**self.dimensions, **extra.get("dimensions", {})}
        # Flattened copy so the JSON formatter emits top-level fields
        for key, value in self.dimensions.items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **kwargs: Any) -> "ContextualLogger":
        """Return a new logger with additional dimensions."""
        return ContextualLogger(self.logger, {**self.dimensions, **kwargs})


class LoggerConfigurator:
    """Builds configured contextual loggers."""

    _configured_names: set = set()

    @staticmethod
    def _build_handler() -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        if settings.LOCAL_DEVELOPMENT:
            handler.setFormatter(_DimensionsFormatter(_LOCAL_FORMAT))
        else:
            handler.setFormatter(
                JsonFormatter(
                    "%(asctime)s %(name)s %(levelname)s %(message)s",
                    rename_fields={"levelname": "level", "asctime": "timestamp"},
                )
            )
        return handler

    @classmethod
    def configure_logger(
        cls, name: str, dimensions: Optional[Dict[str, Any]] = None
    ) -> ContextualLogger:
        """Configure (once per name) and return a contextual logger.

        Args:
            name: Logger name, usually a dotted module-like path
            dimensions: Key/value pairs attached to every record

        Returns:
            ContextualLogger wrapping the named stdlib logger
        """
        base_logger = logging.getLogger(name)
        if name not in cls._configured_names:
            base_logger.handlers.clear()
            base_logger.addHandler(cls._build_handler())
            base_logger.setLevel(settings.LOG_LEVEL)
            base_logger.propagate = False
            cls._configured_names.add(name)
        return ContextualLogger(base_logger, dimensions)


logger = LoggerConfigurator.configure_logger("syncweave")
