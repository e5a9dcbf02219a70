from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ScheduledJob(BaseModel):
    """Public state of a named recurring job."""

    name: str
    cron_expression: str
    last_run: Optional[datetime] = Field(None, description="Start time of the last completed run")
    running: bool = False
    last_status: Optional[str] = Field(None, description="'success' or 'failed'")
    last_error: Optional[str] = None


class BackupStep(BaseModel):
    name: str
    target: str = Field(..., description="Archive or dump file produced by the step")
    success: bool
    error: Optional[str] = None


class BackupReport(BaseModel):
    started_at: datetime
    location: str
    steps: List[BackupStep] = Field(default_factory=list)
    pruned: List[str] = Field(default_factory=list, description="Old files removed by retention")

    @property
    def failed_steps(self) -> List[BackupStep]:
        return [step for step in self.steps if not step.success]

    @property
    def partial(self) -> bool:
        return bool(self.failed_steps)
