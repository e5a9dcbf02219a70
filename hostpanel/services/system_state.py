import threading
from collections import deque
from datetime import datetime
from typing import Deque, Dict, Generic, List, Optional, TypeVar

from hostpanel.models.health import CpuSample, DiskStatus, MemorySample, ServiceStatus

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """
    Fixed-capacity FIFO sample store.

    Appending to a full buffer evicts the oldest sample in the same locked
    step, so readers never observe a half-applied eviction.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, item: T) -> None:
        with self._lock:
            self._items.append(item)

    def snapshot(self) -> List[T]:
        with self._lock:
            return list(self._items)

    def latest(self) -> Optional[T]:
        with self._lock:
            return self._items[-1] if self._items else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SystemState:
    """
    Health state owned by one application instance.

    Only the HealthSampler writes to it; the orchestrator and the event
    channel read snapshots.
    """

    def __init__(self, history_capacity: int = 288):
        self.cpu: RingBuffer[CpuSample] = RingBuffer(history_capacity)
        self.memory: RingBuffer[MemorySample] = RingBuffer(history_capacity)
        self._lock = threading.Lock()
        self._services: Dict[str, ServiceStatus] = {}
        self._disk: Optional[DiskStatus] = None
        self._last_update: Optional[datetime] = None

    def replace_services(self, services: Dict[str, ServiceStatus]) -> None:
        with self._lock:
            self._services = dict(services)

    def set_disk(self, disk: DiskStatus) -> None:
        with self._lock:
            self._disk = disk

    def mark_updated(self, when: datetime) -> None:
        with self._lock:
            self._last_update = when

    @property
    def services(self) -> Dict[str, ServiceStatus]:
        with self._lock:
            return dict(self._services)

    @property
    def disk(self) -> Optional[DiskStatus]:
        with self._lock:
            return self._disk

    @property
    def last_update(self) -> Optional[datetime]:
        with self._lock:
            return self._last_update

    def snapshot(self) -> dict:
        """JSON-ready view used for the initial push to new observers."""
        disk = self.disk
        return {
            "cpu": [sample.model_dump(mode="json") for sample in self.cpu.snapshot()],
            "memory": [sample.model_dump(mode="json") for sample in self.memory.snapshot()],
            "disk": disk.model_dump(mode="json") if disk else {},
            "services": {name: status.model_dump(mode="json") for name, status in self.services.items()},
            "last_update": self.last_update.isoformat() if self.last_update else None,
        }
