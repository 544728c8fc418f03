"""Activities recording sync outcomes on the connector."""

from temporalio import activity

from syncweave.core.mirror_store import mirror_store


@activity.defn
async def save_success_sync_activity(connector_id: int) -> None:
    """Mark the connector's last sync as succeeded."""
    await mirror_store.mark_sync_success(connector_id)


@activity.defn
async def report_initial_sync_progress_activity(connector_id: int, progress: str) -> None:
    """Store the full sync progress label, e.g. ``"33%"``."""
    await mirror_store.report_progress(connector_id, progress)


@activity.defn
async def save_failed_sync_activity(connector_id: int, reason: str) -> None:
    """Mark the connector's last sync as failed."""
    await mirror_store.mark_sync_failure(connector_id, reason)


@activity.defn
async def save_degraded_sync_activity(connector_id: int, reason: str) -> None:
    """Mark the connector's last sync as finished with failed sub-entities."""
    await mirror_store.mark_sync_degraded(connector_id, reason)
