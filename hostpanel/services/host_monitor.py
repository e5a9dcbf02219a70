from typing import Tuple

import psutil

from hostpanel.models.health import DiskStatus
from hostpanel.services.command_executor import CommandExecutor


class HostProbes:
    """
    Direct calls to psutil and systemctl, kept in one place so the sampler
    only orchestrates them and tests can swap in fakes.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        probe_timeout: float = 5.0,
        cpu_interval: float = 0.5,
        root_mountpoint: str = "/",
    ):
        self.executor = executor
        self.probe_timeout = probe_timeout
        self.cpu_interval = cpu_interval
        self.root_mountpoint = root_mountpoint

    def cpu_percent(self) -> float:
        return psutil.cpu_percent(interval=self.cpu_interval)

    def memory(self) -> Tuple[int, int]:
        """Return (total_bytes, used_bytes)."""
        memory = psutil.virtual_memory()
        return memory.total, memory.used

    def disk(self) -> DiskStatus:
        usage = psutil.disk_usage(self.root_mountpoint)
        partitions = [
            {"device": part.device, "mountpoint": part.mountpoint, "fstype": part.fstype}
            for part in psutil.disk_partitions(all=False)
        ]
        return DiskStatus(
            mountpoint=self.root_mountpoint,
            total_bytes=usage.total,
            used_bytes=usage.used,
            usage_percent=usage.percent,
            partitions=partitions,
        )

    def service_active(self, name: str) -> bool:
        """
        True if systemd reports the unit as active. A probe that could not
        run at all (timeout, missing systemctl) raises RuntimeError.
        """
        result = self.executor.run(["systemctl", "is-active", name], timeout=self.probe_timeout)
        if result.timed_out or result.exit_code in (126, 127):
            raise RuntimeError(result.describe_failure())
        return result.ok
