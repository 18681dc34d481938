"""ConfigMap store module for hourly pod-to-node mappings.

Accumulates placement facts for the current hour in memory and mirrors the
whole buffer into one ConfigMap per hour, named "<prefix>-YYYYMMDDHH".

The in-memory buffer is authoritative: every write replaces the persisted
payload with the full buffer instead of patching single keys, so the
ConfigMap always equals the buffer after a successful record(). A failed
write leaves the buffer updated and the next successful write carries it.

A new hour starts a new, empty buffer. The previous hour's ConfigMap keeps
its last written payload and is never touched again.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Optional

import kube_client
from config import DEFAULT_DOCUMENT_PREFIX

logger = logging.getLogger(__name__)

HOUR_FORMAT = "%Y%m%d%H"

DOCUMENT_LABELS = {
    "app": "pod-ashiato",
    "type": "pod-node-mapping",
}


class StoreError(Exception):
    """Raised when the hourly ConfigMap cannot be read or written."""
    pass


def _local_now() -> datetime:
    return datetime.now().astimezone()


def sanitize_key(instance_key: str) -> str:
    """Make an instance key usable as a ConfigMap data key ("/" -> "_")."""
    return instance_key.replace("/", "_")


class PartitionedStore:
    """Hourly partitioned pod-to-node mapping backed by ConfigMaps.

    record() is serialized by an internal lock, so a single store can be
    shared between threads.
    """

    def __init__(
        self,
        core_api: object,
        namespace: str,
        prefix: str = DEFAULT_DOCUMENT_PREFIX,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the store with an empty buffer.

        Args:
            core_api: CoreV1Api (or compatible) instance
            namespace: Namespace holding the hourly ConfigMaps
            prefix: ConfigMap name prefix
            clock: Returns the current time; defaults to local wall-clock time
        """
        self._core_api = core_api
        self._namespace = namespace
        self._prefix = prefix
        self._clock = clock or _local_now
        self._lock = threading.Lock()

        self._partition_key: Optional[str] = None
        self._entries: Dict[str, str] = {}
        self._last_rollover_time: Optional[datetime] = None

    @property
    def partition_key(self) -> Optional[str]:
        """Name of the ConfigMap currently written to, None before the first record."""
        return self._partition_key

    @property
    def entries(self) -> Dict[str, str]:
        """Copy of the current hour's buffer."""
        with self._lock:
            return dict(self._entries)

    @property
    def last_rollover_time(self) -> Optional[datetime]:
        return self._last_rollover_time

    def partition_key_for(self, now: datetime) -> str:
        """ConfigMap name for the hour containing now."""
        return f"{self._prefix}-{now.strftime(HOUR_FORMAT)}"

    def needs_rollover(self, now: datetime) -> bool:
        """Decide whether now starts a new partition.

        A clock that moved backwards across an hour boundary does not roll
        over; the fact stays in the current partition so an earlier hour's
        ConfigMap is never overwritten with a partial buffer.
        """
        if self._partition_key is None or self._last_rollover_time is None:
            return True
        if now.strftime(HOUR_FORMAT) == self._last_rollover_time.strftime(HOUR_FORMAT):
            return False
        return now >= self._last_rollover_time

    def _clock_moved_back(self, now: datetime) -> bool:
        """True when now lies in an earlier hour than the current partition."""
        if self._last_rollover_time is None:
            return False
        return now < self._last_rollover_time and (
            now.strftime(HOUR_FORMAT) != self._last_rollover_time.strftime(HOUR_FORMAT)
        )

    def record(self, instance_key: str, node_name: str) -> None:
        """Record that instance_key runs on node_name and persist the buffer.

        Args:
            instance_key: Pod identifier, usually "<namespace>/<name>"
            node_name: Node the pod is scheduled on

        Raises:
            StoreError: If the ConfigMap cannot be fetched, created or updated
        """
        with self._lock:
            now = self._clock()

            if self.needs_rollover(now):
                self._partition_key = self.partition_key_for(now)
                self._entries = {}
                self._last_rollover_time = now
                logger.info(
                    f"Starting new ConfigMap partition {self._partition_key} "
                    f"(hour {now.strftime(HOUR_FORMAT)})"
                )
            elif self._clock_moved_back(now):
                logger.warning(
                    f"Clock moved backwards ({now.isoformat()} < "
                    f"{self._last_rollover_time.isoformat()}), "
                    f"keeping partition {self._partition_key}"
                )

            self._entries[sanitize_key(instance_key)] = node_name
            self._persist()

    def _persist(self) -> None:
        """Get-or-create the current partition's ConfigMap and write the full buffer."""
        name = self._partition_key
        try:
            kube_client.read_config_map(self._core_api, self._namespace, name)
        except Exception as e:
            if not kube_client.is_not_found(e):
                raise StoreError(f"failed to get ConfigMap {name}: {e}") from e

            try:
                kube_client.create_config_map(
                    self._core_api, self._namespace, name, self._entries, DOCUMENT_LABELS
                )
            except Exception as create_error:
                raise StoreError(
                    f"failed to create ConfigMap {name}: {create_error}"
                ) from create_error

            logger.info(f"Created ConfigMap {self._namespace}/{name}")
            return

        try:
            kube_client.replace_config_map(
                self._core_api, self._namespace, name, self._entries, DOCUMENT_LABELS
            )
        except Exception as e:
            raise StoreError(f"failed to update ConfigMap {name}: {e}") from e

        logger.debug(
            f"Updated ConfigMap {self._namespace}/{name} ({len(self._entries)} entries)"
        )
