"""Builds source clients for connectors."""

from functools import partial
from typing import Dict, Type

from syncweave import schemas
from syncweave.core.logging import LoggerConfigurator
from syncweave.core.shared_models import ConnectorProvider
from syncweave.platform.auth.connection_credentials import connection_credentials
from syncweave.platform.sources._base import BaseSourceClient
from syncweave.platform.sources.google_drive import GoogleDriveClient
from syncweave.platform.sources.slack import SlackClient

SOURCE_CLIENTS: Dict[ConnectorProvider, Type[BaseSourceClient]] = {
    ConnectorProvider.SLACK: SlackClient,
    ConnectorProvider.GOOGLE_DRIVE: GoogleDriveClient,
}


async def get_source_client(connector: schemas.Connector) -> BaseSourceClient:
    """Create a client for the connector's provider with its current access token.

    A token the provider rejects is dropped from the cache, so the retried
    activity reads a fresh one from the connection service.
    """
    access_token = await connection_credentials.get_access_token(
        connector.connection_id, connector.provider
    )
    client_cls = SOURCE_CLIENTS[connector.provider]
    return client_cls(
        access_token,
        on_token_rejected=partial(
            connection_credentials.invalidate, connector.connection_id, connector.provider
        ),
        contextual_logger=LoggerConfigurator.configure_logger(
            f"syncweave.sources.{connector.provider.value}",
            dimensions={"connector_id": connector.id, "provider": connector.provider.value},
        ),
    )
