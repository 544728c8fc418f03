"""Tests for the worker control server."""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from syncweave.core.config import settings
from syncweave.platform.temporal.worker import TemporalWorker


@pytest.fixture
async def worker_client():
    """Control app of a fresh worker behind an aiohttp test client."""
    worker = TemporalWorker()
    client = TestClient(TestServer(worker.build_control_app()))
    await client.start_server()
    yield worker, client
    await client.close()


@pytest.mark.asyncio
async def test_health_follows_worker_state(worker_client):
    """Test /health is only OK while running and not draining."""
    worker, client = worker_client

    response = await client.get("/health")
    assert response.status == 503
    assert await response.text() == "NOT_RUNNING"

    worker.running = True
    response = await client.get("/health")
    assert response.status == 200

    worker.draining = True
    response = await client.get("/health")
    assert response.status == 503
    assert await response.text() == "DRAINING"


@pytest.mark.asyncio
async def test_status_reports_capacity(worker_client):
    """Test /status exposes the task queue and fan-out settings."""
    worker, client = worker_client
    worker.running = True

    response = await client.get("/status")
    body = await response.json()

    assert response.status == 200
    assert body["status"] == "running"
    assert body["task_queue"] == settings.TEMPORAL_TASK_QUEUE
    assert body["capacity"]["sync_max_concurrency"] == settings.SYNC_MAX_CONCURRENCY
    assert body["fanout_tasks_active"] == 0


@pytest.mark.asyncio
async def test_metrics_endpoint(worker_client):
    """Test /metrics serves the Prometheus exposition format."""
    worker, client = worker_client
    worker.running = True

    response = await client.get("/metrics")
    text = await response.text()

    assert response.status == 200
    assert "syncweave_worker_" in text
