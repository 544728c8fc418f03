"""Activities currently running in this worker process.

Feeds the worker's /status and /metrics endpoints. Activities register
themselves with ``worker_metrics.track_activity`` for the duration of a run.
"""

import asyncio
import os
import socket
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from typing import Any, Dict, List, Optional, Set

WORKER_POD_PREFIX = "syncweave-worker"


@dataclass
class _RunningActivity:
    activity_name: str
    connector_id: Optional[int]
    provider: Optional[str]
    started_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def describe(self, now: datetime) -> Dict[str, Any]:
        return {
            "activity_name": self.activity_name,
            "connector_id": self.connector_id,
            "provider": self.provider,
            "start_time": self.started_at.isoformat(),
            "duration_seconds": round((now - self.started_at).total_seconds(), 2),
            "metadata": self.metadata,
        }


def _resolve_worker_id() -> str:
    """StatefulSet pod name when running in the worker pods, else the hostname."""
    pod_name = os.environ.get("HOSTNAME")
    if pod_name and pod_name.startswith(WORKER_POD_PREFIX):
        return pod_name
    try:
        return socket.gethostname()
    except OSError:
        return "unknown-worker"


class WorkerMetricsRegistry:
    """Registry of the activities running in this worker process."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._running: Dict[int, _RunningActivity] = {}
        self._lock = asyncio.Lock()
        self._started_at = datetime.now(timezone.utc)
        self._worker_id = _resolve_worker_id()
        # One activity may run twice at once for a connector (two channel pages)
        self._keys = count()

    @property
    def worker_id(self) -> str:
        """Pod name or hostname of this worker."""
        return self._worker_id

    def get_pod_ordinal(self) -> str:
        """StatefulSet ordinal (``syncweave-worker-2`` -> ``"2"``), else the worker id.

        Used as a low-cardinality Prometheus label.
        """
        suffix = self._worker_id.rsplit("-", 1)[-1]
        return suffix if suffix.isdigit() else self._worker_id

    @property
    def uptime_seconds(self) -> float:
        """Seconds since the registry was created."""
        return (datetime.now(timezone.utc) - self._started_at).total_seconds()

    @asynccontextmanager
    async def track_activity(
        self,
        activity_name: str,
        connector_id: Optional[int] = None,
        provider: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Register an activity for the duration of the block.

        Example:
            async with worker_metrics.track_activity(
                "sync_channel_activity",
                connector_id=connector.id,
                provider=connector.provider.value,
                metadata={"channel_id": channel_id},
            ):
                ...
        """
        key = next(self._keys)
        running = _RunningActivity(
            activity_name=activity_name,
            connector_id=connector_id,
            provider=provider,
            started_at=datetime.now(timezone.utc),
            metadata=metadata or {},
        )
        async with self._lock:
            self._running[key] = running
        try:
            yield
        finally:
            async with self._lock:
                self._running.pop(key, None)

    async def get_active_activities(self) -> List[Dict[str, Any]]:
        """Running activities with their duration so far."""
        now = datetime.now(timezone.utc)
        async with self._lock:
            return [running.describe(now) for running in self._running.values()]

    async def get_active_connector_ids(self) -> Set[int]:
        """Connectors with at least one running activity."""
        async with self._lock:
            return {
                running.connector_id
                for running in self._running.values()
                if running.connector_id is not None
            }

    async def get_per_connector_metrics(self) -> Dict[str, Dict[str, int]]:
        """Running activities and distinct connectors, per provider."""
        async with self._lock:
            activities: Counter = Counter()
            connectors: Dict[str, Set[int]] = defaultdict(set)
            for running in self._running.values():
                provider = running.provider or "unknown"
                activities[provider] += 1
                if running.connector_id is not None:
                    connectors[provider].add(running.connector_id)

        return {
            provider: {
                "active_activities": n,
                "active_connectors": len(connectors[provider]),
            }
            for provider, n in activities.items()
        }

    async def get_metrics_summary(self) -> Dict[str, Any]:
        """Worker id, uptime and running work, as served by /status."""
        activities = await self.get_active_activities()
        connector_ids = await self.get_active_connector_ids()
        return {
            "worker_id": self.worker_id,
            "uptime_seconds": round(self.uptime_seconds, 2),
            "active_activities_count": len(activities),
            "active_connectors": sorted(connector_ids),
            "active_activities": activities,
        }


worker_metrics = WorkerMetricsRegistry()
