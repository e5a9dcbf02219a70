from typing import List

from pydantic import BaseModel, Field

from hostpanel.errors import ExternalCommandError


class CommandResult(BaseModel):
    """Outcome of a single external command invocation."""

    command: List[str] = Field(..., description="Argument vector that was executed")
    stdout: str = Field("", description="Captured standard output")
    stderr: str = Field("", description="Captured standard error")
    exit_code: int = Field(
        ...,
        description="Process exit status; -1 after a timeout, 127 if the binary is missing",
    )
    timed_out: bool = Field(
        False,
        description="True if the process was killed because it exceeded its timeout",
    )
    duration_seconds: float = Field(0.0, ge=0.0)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def describe_failure(self) -> str:
        program = self.command[0] if self.command else "<empty>"
        if self.timed_out:
            return f"{program} timed out after {self.duration_seconds:.1f}s"
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            return f"{program} exited with code {self.exit_code}: {detail}"
        return f"{program} exited with code {self.exit_code}"

    def raise_for_status(self) -> "CommandResult":
        if not self.ok:
            raise ExternalCommandError(self.describe_failure(), result=self)
        return self
