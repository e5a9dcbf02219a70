from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CpuSample(BaseModel):
    timestamp: datetime
    value: float = Field(..., ge=0, le=100, description="CPU utilisation in percent")


class MemorySample(BaseModel):
    timestamp: datetime
    total_bytes: int = Field(..., ge=0)
    used_bytes: int = Field(..., ge=0)

    @property
    def usage_percent(self) -> float:
        if not self.total_bytes:
            return 0.0
        return self.used_bytes / self.total_bytes * 100


class DiskStatus(BaseModel):
    """Root filesystem usage plus the mounted partition layout."""

    mountpoint: str = "/"
    total_bytes: int = Field(..., ge=0)
    used_bytes: int = Field(..., ge=0)
    usage_percent: float = Field(..., ge=0, le=100)
    partitions: List[Dict[str, str]] = Field(default_factory=list)


class ServiceStatus(BaseModel):
    name: str
    running: bool
    checked_at: datetime


class SystemStats(BaseModel):
    """Aggregated view returned by the stats endpoint."""

    cpu_percent: Optional[float] = None
    memory_percent: Optional[float] = None
    disk_usage_percent: Optional[float] = None
    uptime_seconds: int = Field(0, ge=0, description="Seconds since the panel process started")
    sites_active: int = 0
    sites_total: int = 0
    certificates_active: int = 0
    databases_total: int = 0
    services: Dict[str, ServiceStatus] = Field(default_factory=dict)
    cpu_history: List[CpuSample] = Field(default_factory=list)
    memory_history: List[MemorySample] = Field(default_factory=list)
    last_update: Optional[datetime] = None
