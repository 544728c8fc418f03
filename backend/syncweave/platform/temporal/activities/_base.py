"""Helpers shared by activities."""

from temporalio import activity
from temporalio.exceptions import ApplicationError

from syncweave import schemas
from syncweave.core.logging import ContextualLogger, LoggerConfigurator
from syncweave.core.mirror_store import MirrorStore


async def load_connector(store: MirrorStore, connector_id: int) -> schemas.Connector:
    """Fetch the connector an activity works on.

    Raises:
        ApplicationError: Non-retryable, when the connector was deleted
    """
    connector = await store.get_connector(connector_id)
    if connector is None:
        raise ApplicationError(
            f"Connector {connector_id} not found",
            type="ConnectorNotFound",
            non_retryable=True,
        )
    return connector


def activity_logger(connector: schemas.Connector, **dimensions) -> ContextualLogger:
    """Logger carrying the connector and the running activity as dimensions."""
    activity_type = activity.info().activity_type if activity.in_activity() else "unknown"
    return LoggerConfigurator.configure_logger(
        "syncweave.temporal.activity",
        dimensions={
            "connector_id": connector.id,
            "provider": connector.provider.value,
            "activity": activity_type,
            **dimensions,
        },
    )
