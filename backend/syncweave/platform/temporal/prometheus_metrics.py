"""Prometheus gauges exported by the worker's /metrics endpoint."""

from typing import Dict, Optional, Set

from prometheus_client import CollectorRegistry, Gauge, Info, ProcessCollector, generate_latest

NAMESPACE = "syncweave_worker"

STATUS_VALUES = {"stopped": 0, "running": 1, "draining": 2}

# Separate from any other Prometheus registry in the process
worker_registry = CollectorRegistry()

# Providers labelled at the previous scrape: {worker_id: {provider}}
_previous_provider_labels: Dict[str, Set[str]] = {}

ProcessCollector(registry=worker_registry, namespace=NAMESPACE)


def _gauge(name: str, documentation: str, by_provider: bool = False) -> Gauge:
    labels = ["worker_id", "provider"] if by_provider else ["worker_id"]
    return Gauge(f"{NAMESPACE}_{name}", documentation, labels, registry=worker_registry)


worker_info = Info(NAMESPACE, "Worker id and task queue", registry=worker_registry)

worker_uptime_seconds = _gauge("uptime_seconds", "Seconds since the worker started")
worker_status = _gauge("status", "Worker status: 0=stopped, 1=running, 2=draining")
worker_active_activities = _gauge("active_activities", "Activities currently executing")
worker_active_connectors = _gauge("active_connectors", "Distinct connectors being synced")
worker_active_activities_by_provider = _gauge(
    "active_activities_by_provider", "Activities currently executing, per provider", True
)
worker_active_connectors_by_provider = _gauge(
    "active_connectors_by_provider", "Distinct connectors being synced, per provider", True
)
worker_sync_max_concurrency_config = _gauge(
    "sync_max_concurrency_config", "Fan-out width inside one activity (SYNC_MAX_CONCURRENCY)"
)
worker_fanout_tasks_active = _gauge(
    "fanout_tasks_active", "Fan-out tasks currently running inside activities"
)


def update_worker_metrics(
    worker_id: str,
    status: str,
    uptime_seconds: float,
    active_activities_count: int,
    active_connectors_count: int,
    task_queue: str,
    provider_metrics: Optional[Dict[str, Dict[str, int]]] = None,
    sync_max_concurrency: int = 8,
    fanout_tasks_active: int = 0,
) -> None:
    """Update all Prometheus worker metrics.

    Args:
        worker_id: Worker identifier (pod ordinal like '0', '1', '2')
        status: Worker status string ("running", "draining", "stopped")
        uptime_seconds: Worker uptime in seconds
        active_activities_count: Number of currently executing activities
        active_connectors_count: Number of unique connectors being synced
        task_queue: Task queue name this worker is polling
        provider_metrics: Provider -> {"active_activities", "active_connectors"}
        sync_max_concurrency: Configured SYNC_MAX_CONCURRENCY value
        fanout_tasks_active: Fan-out tasks currently running
    """
    worker_info.info({"worker_id": worker_id, "task_queue": task_queue})

    status_value = STATUS_VALUES.get(status, 0)

    worker_uptime_seconds.labels(worker_id=worker_id).set(uptime_seconds)
    worker_status.labels(worker_id=worker_id).set(status_value)
    worker_active_activities.labels(worker_id=worker_id).set(active_activities_count)
    worker_active_connectors.labels(worker_id=worker_id).set(active_connectors_count)

    current_labels = set()
    for provider, metrics in (provider_metrics or {}).items():
        current_labels.add(provider)
        worker_active_activities_by_provider.labels(worker_id=worker_id, provider=provider).set(
            metrics.get("active_activities", 0)
        )
        worker_active_connectors_by_provider.labels(worker_id=worker_id, provider=provider).set(
            metrics.get("active_connectors", 0)
        )

    # Zero out providers with no work left since the last scrape
    for provider in _previous_provider_labels.get(worker_id, set()) - current_labels:
        worker_active_activities_by_provider.labels(worker_id=worker_id, provider=provider).set(0)
        worker_active_connectors_by_provider.labels(worker_id=worker_id, provider=provider).set(0)
    _previous_provider_labels[worker_id] = current_labels

    worker_sync_max_concurrency_config.labels(worker_id=worker_id).set(sync_max_concurrency)
    worker_fanout_tasks_active.labels(worker_id=worker_id).set(fanout_tasks_active)


def get_prometheus_metrics() -> bytes:
    """Generate Prometheus metrics in text format.

    Returns:
        Prometheus metrics in text format (bytes)
    """
    return generate_latest(worker_registry)
