"""Temporal worker for syncweave."""

import asyncio
import signal
from datetime import timedelta
from typing import Any, Optional

from aiohttp import web
from temporalio.worker import Worker

from syncweave.core.config import settings
from syncweave.core.logging import logger
from syncweave.core.redis_client import redis_client
from syncweave.db.init_db import init_db
from syncweave.db.session import async_engine
from syncweave.platform.temporal.client import temporal_client
from syncweave.platform.temporal.prometheus_metrics import get_prometheus_metrics
from syncweave.platform.temporal.prometheus_metrics import (
    update_worker_metrics as update_prometheus_metrics,
)
from syncweave.platform.temporal.worker_metrics import worker_metrics

MAX_CONCURRENT_WORKFLOW_TASK_POLLS = 8
MAX_CONCURRENT_ACTIVITY_TASK_POLLS = 16


class TemporalWorker:
    """Temporal worker running the connector workflows and activities."""

    def __init__(self) -> None:
        """Initialize the Temporal worker."""
        self.worker: Optional[Worker] = None
        self.running = False
        self.draining = False
        self.metrics_server = None

    async def start(self) -> None:
        """Start the Temporal worker."""
        try:
            # Metrics are optional; the worker runs without them
            try:
                await self._start_control_server()
            except Exception as e:
                logger.warning(f"Failed to start control server (metrics unavailable): {e}")

            await init_db(async_engine)
            client = await temporal_client.get_client()
            task_queue = settings.TEMPORAL_TASK_QUEUE
            logger.info(f"Starting Temporal worker on task queue: {task_queue}")

            self.worker = self.build_worker(client, task_queue)
            self.running = True
            logger.info(
                f"Worker started with graceful shutdown timeout: "
                f"{settings.TEMPORAL_GRACEFUL_SHUTDOWN_TIMEOUT}s"
            )
            await self.worker.run()

        except Exception as e:
            logger.error(f"Error starting Temporal worker: {e}")
            raise

    def build_worker(self, client, task_queue: str) -> Worker:
        """Build a worker registered with every connector workflow and activity."""
        from syncweave.platform.temporal.activities import (
            delete_channel_activity,
            delete_channels_from_mirror_activity,
            fetch_users_activity,
            garbage_collect_files_activity,
            get_channel_activity,
            get_channels_activity,
            get_channels_to_garbage_collect_activity,
            get_files_to_garbage_collect_activity,
            get_folders_to_sync_activity,
            get_start_page_token_activity,
            incremental_sync_changes_activity,
            join_channel_activity,
            report_initial_sync_progress_activity,
            save_changes_cursor_activity,
            save_degraded_sync_activity,
            save_failed_sync_activity,
            save_success_sync_activity,
            sync_channel_activity,
            sync_folder_page_activity,
            sync_non_threaded_activity,
            sync_thread_activity,
        )
        from syncweave.platform.temporal.workflows import (
            GoogleDriveFullSyncWorkflow,
            GoogleDriveGarbageCollectorWorkflow,
            GoogleDriveIncrementalSyncWorkflow,
            SlackGarbageCollectorWorkflow,
            SlackMemberJoinedChannelWorkflow,
            SlackSyncOneChannelWorkflow,
            SlackSyncOneMessageDebouncedWorkflow,
            SlackSyncOneThreadDebouncedWorkflow,
            SlackWorkspaceFullSyncWorkflow,
        )

        return Worker(
            client,
            task_queue=task_queue,
            workflows=[
                SlackWorkspaceFullSyncWorkflow,
                SlackSyncOneChannelWorkflow,
                SlackSyncOneThreadDebouncedWorkflow,
                SlackSyncOneMessageDebouncedWorkflow,
                SlackMemberJoinedChannelWorkflow,
                SlackGarbageCollectorWorkflow,
                GoogleDriveFullSyncWorkflow,
                GoogleDriveIncrementalSyncWorkflow,
                GoogleDriveGarbageCollectorWorkflow,
            ],
            activities=[
                fetch_users_activity,
                get_channels_activity,
                get_channel_activity,
                join_channel_activity,
                sync_channel_activity,
                sync_thread_activity,
                sync_non_threaded_activity,
                get_channels_to_garbage_collect_activity,
                delete_channel_activity,
                delete_channels_from_mirror_activity,
                get_folders_to_sync_activity,
                get_start_page_token_activity,
                save_changes_cursor_activity,
                sync_folder_page_activity,
                incremental_sync_changes_activity,
                get_files_to_garbage_collect_activity,
                garbage_collect_files_activity,
                save_success_sync_activity,
                report_initial_sync_progress_activity,
                save_failed_sync_activity,
                save_degraded_sync_activity,
            ],
            workflow_runner=self._get_sandbox_config(),
            max_concurrent_workflow_task_polls=MAX_CONCURRENT_WORKFLOW_TASK_POLLS,
            max_concurrent_activity_task_polls=MAX_CONCURRENT_ACTIVITY_TASK_POLLS,
            sticky_queue_schedule_to_start_timeout=timedelta(seconds=0.5),
            nonsticky_to_sticky_poll_ratio=0.5,
            graceful_shutdown_timeout=timedelta(
                seconds=settings.TEMPORAL_GRACEFUL_SHUTDOWN_TIMEOUT
            ),
        )

    async def stop(self) -> None:
        """Stop the Temporal worker."""
        if self.worker and self.running:
            logger.info("Stopping worker gracefully")
            self.running = False
            await self.worker.shutdown()

        if self.metrics_server:
            try:
                await self.metrics_server.cleanup()
            except Exception as e:
                logger.warning(f"Metrics server cleanup skipped: {e}")
            self.metrics_server = None

        await temporal_client.close()
        await redis_client.close()

    def build_control_app(self) -> web.Application:
        """aiohttp app serving /health, /metrics, /status and /drain."""
        app = web.Application()
        app.router.add_post("/drain", self._handle_drain)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/metrics", self._handle_prometheus_metrics)
        app.router.add_get("/status", self._handle_json_status)
        return app

    async def _start_control_server(self):
        """Start HTTP server for drain control and metrics.

        Exposes operational metadata (connector ids, activity names) but no
        synced content. Meant for internal cluster access only.
        """
        runner = web.AppRunner(self.build_control_app())
        await runner.setup()
        site = web.TCPSite(runner, "0.0.0.0", settings.WORKER_METRICS_PORT)
        await site.start()
        self.metrics_server = runner
        logger.info(
            f"Control server started on 0.0.0.0:{settings.WORKER_METRICS_PORT} "
            f"(endpoints: /health, /metrics, /status, /drain)"
        )

    def _status(self) -> str:
        if self.draining:
            return "draining"
        if not self.running:
            return "stopped"
        return "running"

    async def _handle_drain(self, request):
        """Handle drain request from a PreStop hook.

        Stops polling for new tasks and lets running activities finish.
        """
        logger.warning("DRAIN: Initiating graceful worker shutdown")
        self.draining = True

        if self.worker:
            asyncio.create_task(self._shutdown_worker())

        return web.Response(text="Drain initiated")

    async def _shutdown_worker(self):
        try:
            logger.info("Calling worker.shutdown() - stops polling for new work")
            if self.worker:
                await self.worker.shutdown()
            logger.info("Worker shutdown complete - activities finished, process will exit")
        except Exception as e:
            logger.error(f"Error during worker shutdown: {e}")

    async def _handle_health(self, request):
        """Health check endpoint.

        Returns:
            200 OK: Worker is running and accepting work
            503 Service Unavailable: Worker is not running or draining
        """
        if not self.running:
            return web.Response(text="NOT_RUNNING", status=503)
        if self.draining:
            return web.Response(text="DRAINING", status=503)
        return web.Response(text="OK", status=200)

    async def _handle_prometheus_metrics(self, request):
        """Prometheus metrics endpoint."""
        try:
            metrics = await worker_metrics.get_metrics_summary()
            provider_metrics = await worker_metrics.get_per_connector_metrics()

            from syncweave.platform.sync.async_helpers import get_active_task_count

            update_prometheus_metrics(
                worker_id=worker_metrics.get_pod_ordinal(),
                status=self._status(),
                uptime_seconds=metrics["uptime_seconds"],
                active_activities_count=metrics["active_activities_count"],
                active_connectors_count=len(metrics["active_connectors"]),
                task_queue=settings.TEMPORAL_TASK_QUEUE,
                provider_metrics=provider_metrics,
                sync_max_concurrency=settings.SYNC_MAX_CONCURRENCY,
                fanout_tasks_active=get_active_task_count(),
            )

            return web.Response(
                body=get_prometheus_metrics(),
                content_type="text/plain; version=0.0.4",
                charset="utf-8",
            )

        except Exception as e:
            logger.error(f"Error generating Prometheus metrics: {e}", exc_info=True)
            return web.Response(text=f"Error: {str(e)}", status=500)

    async def _handle_json_status(self, request):
        """JSON status endpoint for debugging."""
        try:
            metrics = await worker_metrics.get_metrics_summary()

            from syncweave.platform.sync.async_helpers import get_active_task_count

            response_data = {
                "worker_id": metrics["worker_id"],
                "status": self._status(),
                "uptime_seconds": metrics["uptime_seconds"],
                "task_queue": settings.TEMPORAL_TASK_QUEUE,
                "capacity": {
                    "max_workflow_polls": MAX_CONCURRENT_WORKFLOW_TASK_POLLS,
                    "max_activity_polls": MAX_CONCURRENT_ACTIVITY_TASK_POLLS,
                    "sync_max_concurrency": settings.SYNC_MAX_CONCURRENCY,
                },
                "active_activities_count": metrics["active_activities_count"],
                "active_connectors": metrics["active_connectors"],
                "active_activities": metrics["active_activities"],
                "fanout_tasks_active": get_active_task_count(),
            }
            return web.json_response(response_data)

        except Exception as e:
            logger.error(f"Error generating JSON status: {e}", exc_info=True)
            return web.json_response(
                {"error": "Failed to generate status", "detail": str(e)}, status=500
            )

    def _get_sandbox_config(self):
        """Determine the appropriate sandbox configuration."""
        if settings.TEMPORAL_DISABLE_SANDBOX:
            from temporalio.worker import UnsandboxedWorkflowRunner

            logger.warning("TEMPORAL SANDBOX DISABLED - Use only for debugging!")
            return UnsandboxedWorkflowRunner()

        from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner

        logger.info("Using default sandboxed workflow runner")
        return SandboxedWorkflowRunner()


async def main() -> None:
    """Run the worker until interrupted."""
    worker = TemporalWorker()

    def signal_handler(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        asyncio.create_task(worker.stop())

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
