from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from hostpanel.models.health import CpuSample, MemorySample, ServiceStatus
from hostpanel.services.host_monitor import HostProbes
from hostpanel.services.notifier import Notifier
from hostpanel.services.system_state import SystemState

logger = structlog.get_logger(__name__)


class HealthSampler:
    """
    Polls CPU, memory, disk and service liveness into a SystemState.

    All probes of one tick run concurrently; each service probe is its own
    future so a hanging unit only costs its own timeout. A failing probe is
    logged and its field left out of the tick's broadcast.
    """

    def __init__(
        self,
        state: SystemState,
        probes: HostProbes,
        notifier: Notifier,
        services: List[str],
        cpu_alert_percent: float = 90.0,
        memory_alert_percent: float = 90.0,
        probe_timeout: float = 5.0,
        counters: Optional[Callable[[], Dict[str, Any]]] = None,
    ):
        self.state = state
        self.probes = probes
        self.notifier = notifier
        self.services = list(services)
        self.cpu_alert_percent = cpu_alert_percent
        self.memory_alert_percent = memory_alert_percent
        self.counters = counters
        # cpu_percent blocks for its sampling interval, so give it headroom
        self.wait_timeout = probe_timeout + 2.0
        self._pool = ThreadPoolExecutor(
            max_workers=3 + len(self.services),
            thread_name_prefix="probe",
        )

    def tick(self) -> Dict[str, Any]:
        """Run one sampling cycle and return the data that was broadcast."""
        now = datetime.now(timezone.utc)

        cpu_future = self._pool.submit(self.probes.cpu_percent)
        memory_future = self._pool.submit(self.probes.memory)
        disk_future = self._pool.submit(self.probes.disk)
        service_futures = {
            name: self._pool.submit(self.probes.service_active, name) for name in self.services
        }

        all_futures = [cpu_future, memory_future, disk_future, *service_futures.values()]
        wait(all_futures, timeout=self.wait_timeout)

        system: Dict[str, Any] = {}

        cpu = self._collect("cpu", cpu_future)
        if cpu is not None:
            self.state.cpu.append(CpuSample(timestamp=now, value=min(max(cpu, 0.0), 100.0)))
            system["cpu"] = cpu

        memory = self._collect("memory", memory_future)
        memory_percent: Optional[float] = None
        if memory is not None:
            total, used = memory
            sample = MemorySample(timestamp=now, total_bytes=total, used_bytes=used)
            self.state.memory.append(sample)
            memory_percent = sample.usage_percent
            system["memory"] = memory_percent

        disk = self._collect("disk", disk_future)
        if disk is not None:
            self.state.set_disk(disk)
            system["disk_usage"] = disk.usage_percent

        services: Dict[str, ServiceStatus] = {}
        for name, future in service_futures.items():
            running = self._collect(f"service:{name}", future)
            if running is not None:
                services[name] = ServiceStatus(name=name, running=running, checked_at=now)
        self.state.replace_services(services)
        self.state.mark_updated(now)

        stats: Dict[str, Any] = {"system": system}
        if self.counters is not None:
            try:
                stats.update(self.counters())
            except Exception as exc:
                logger.warning("stats_counters_failed", error=str(exc))
        self.notifier.broadcast("stats", stats)
        self.notifier.broadcast(
            "service_status",
            {name: status.model_dump(mode="json") for name, status in services.items()},
        )

        if cpu is not None:
            self.notifier.alert(
                "cpu",
                cpu > self.cpu_alert_percent,
                "High CPU usage detected",
                {"usage": cpu},
            )
        if memory_percent is not None:
            self.notifier.alert(
                "memory",
                memory_percent > self.memory_alert_percent,
                "High memory usage detected",
                {"usage": memory_percent},
            )

        logger.debug("health_sampled", cpu=cpu, memory=memory_percent, services=len(services))
        return {"system": system, "services": services}

    def _collect(self, probe: str, future: Future):
        if not future.done():
            logger.warning("probe_timed_out", probe=probe)
            future.cancel()
            return None
        try:
            return future.result()
        except Exception as exc:
            logger.warning("probe_failed", probe=probe, error=str(exc))
            return None

    def close(self) -> None:
        self._pool.shutdown(wait=False)
