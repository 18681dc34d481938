"""Sampler module for pod placement collection.

Responsible for listing pods, applying the configured filters, and writing
one JSON placement record per matching pod to the output stream. When a
store is attached, each scheduled pod's placement is also handed to it.
"""

import json
import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple

import kube_client
from config import SamplerConfig

logger = logging.getLogger(__name__)

ZERO_TIMESTAMP = "0001-01-01T00:00:00Z"


class SamplerError(Exception):
    """Raised when a sampling cycle cannot list pods."""
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> str:
    """Format a datetime as RFC3339 in UTC ("Z" suffix).

    Naive datetimes are taken to be UTC, which is how the kubernetes client
    deserializes API timestamps without an offset. A missing time formats as
    ZERO_TIMESTAMP so the field is always a string.
    """
    if value is None:
        return ZERO_TIMESTAMP
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class PodCondition:
    """One entry of a pod's status.conditions."""
    type: str
    status: str
    last_transition_time: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status,
            "last_transition_time": format_timestamp(self.last_transition_time),
        }


@dataclass(frozen=True)
class PlacementRecord:
    """Where one pod was running at capture time."""
    namespace: str
    pod_name: str
    node_name: str
    pod_ip: str
    phase: str
    timestamp: datetime
    conditions: Tuple[PodCondition, ...] = ()

    @classmethod
    def from_pod(cls, pod: Any, now: datetime) -> "PlacementRecord":
        """Build a record from a V1Pod.

        Args:
            pod: kubernetes.client.V1Pod
            now: Capture time of the sampling cycle

        Returns:
            PlacementRecord with empty strings for fields the pod lacks
        """
        metadata = pod.metadata
        spec = pod.spec
        status = pod.status

        conditions = tuple(
            PodCondition(
                type=cond.type or "",
                status=cond.status or "",
                last_transition_time=cond.last_transition_time,
            )
            for cond in ((status.conditions if status else None) or [])
        )

        return cls(
            namespace=(metadata.namespace if metadata else None) or "",
            pod_name=(metadata.name if metadata else None) or "",
            node_name=(spec.node_name if spec else None) or "",
            pod_ip=(status.pod_ip if status else None) or "",
            phase=(status.phase if status else None) or "",
            timestamp=now,
            conditions=conditions,
        )

    @property
    def instance_key(self) -> str:
        return f"{self.namespace}/{self.pod_name}"

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation; "conditions" is omitted when empty."""
        data: Dict[str, Any] = {
            "namespace": self.namespace,
            "pod_name": self.pod_name,
            "node_name": self.node_name,
            "pod_ip": self.pod_ip,
            "phase": self.phase,
            "timestamp": format_timestamp(self.timestamp),
        }
        if self.conditions:
            data["conditions"] = [cond.to_dict() for cond in self.conditions]
        return data

    def to_json(self) -> str:
        """Compact single-line JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"))


class Sampler:
    """Periodic pod placement sampler.

    Each cycle lists pods once and emits one line per matching pod. Cycles
    never overlap: the repeating loop waits for the next tick only after
    the current cycle has finished.
    """

    def __init__(
        self,
        config: SamplerConfig,
        core_api: Any,
        store: Any = None,
        output: Optional[TextIO] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the sampler.

        Args:
            config: Sampler configuration (interval and filters)
            core_api: CoreV1Api instance
            store: Optional PartitionedStore receiving placement facts
            output: Stream receiving JSON lines (default: sys.stdout)
            clock: Returns the capture time; defaults to UTC now
        """
        self._config = config
        self._core_api = core_api
        self._store = store
        self._output = output
        self._clock = clock or _utc_now

    def run_once(self) -> List[PlacementRecord]:
        """Run exactly one sampling cycle.

        Raises:
            SamplerError: If pods cannot be listed
        """
        return self.sample()

    def run(self, shutdown_event: Any) -> None:
        """Sample now, then every interval until shutdown.

        Cycle errors are logged and the loop continues. A cycle that is
        in progress when shutdown is requested runs to completion.

        Args:
            shutdown_event: Threading event to signal shutdown
        """
        while True:
            cycle_start = time.monotonic()

            try:
                self.sample()
            except SamplerError as e:
                logger.error(f"Sampler cycle failed: {e}")
            except Exception:
                logger.exception("Unexpected error during sampler cycle")

            elapsed = time.monotonic() - cycle_start
            sleep_time = max(0.0, self._config.interval_seconds - elapsed)
            if shutdown_event.wait(timeout=sleep_time):
                break

    def sample(self) -> List[PlacementRecord]:
        """Execute a single sampling cycle.

        Returns:
            The records written to the output stream

        Raises:
            SamplerError: If pods cannot be listed
        """
        try:
            pods = kube_client.list_pods(
                self._core_api, self._config.namespace, self._config.label_selector
            )
        except Exception as e:
            raise SamplerError(
                f"failed to list pods: {kube_client.describe_error(e)}"
            ) from e

        pods = self._filter_by_name(pods)

        if not pods:
            logger.info(
                "No pods found matching the specified filters: "
                f"namespace={self._config.namespace!r}, "
                f"name_prefix={self._config.name_prefix!r}, "
                f"label_selector={self._config.label_selector!r}"
            )
            return []

        now = self._clock()
        output = self._output or sys.stdout
        emitted: List[PlacementRecord] = []

        for pod in pods:
            try:
                record = PlacementRecord.from_pod(pod, now)
                line = record.to_json()
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Failed to marshal pod info: {e}")
                continue

            output.write(line + "\n")
            output.flush()
            emitted.append(record)

            self._store_placement(record)

        logger.debug(f"Sampler cycle complete: {len(emitted)} pods written")
        return emitted

    def _filter_by_name(self, pods: List[Any]) -> List[Any]:
        """Keep pods whose name starts with the configured prefix."""
        prefix = self._config.name_prefix
        if not prefix:
            return list(pods)
        return [
            pod for pod in pods
            if pod.metadata is not None and (pod.metadata.name or "").startswith(prefix)
        ]

    def _store_placement(self, record: PlacementRecord) -> None:
        """Hand a scheduled pod's placement to the store, if one is attached."""
        if self._store is None:
            return
        if not record.node_name:
            logger.debug(f"Pod {record.instance_key} is not scheduled yet, not stored")
            return

        try:
            self._store.record(record.instance_key, record.node_name)
        except Exception as e:
            logger.warning(f"Failed to store placement of {record.instance_key}: {e}")
