from typing import Any, Optional


class HostPanelError(Exception):
    """Base class for all errors raised by the hosting core."""


class ValidationError(HostPanelError):
    """Malformed input, rejected before any side effect."""


class ConflictError(HostPanelError):
    """A site with the same name already exists."""


class NotFoundError(HostPanelError):
    """The referenced site or directory does not exist."""


class ExternalCommandError(HostPanelError):
    """
    An external tool (nginx, certbot, mysqldump, ...) exited non-zero or
    timed out. The captured CommandResult is kept on the exception.
    """

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result

    @property
    def stderr(self) -> str:
        return getattr(self.result, "stderr", "") or ""

    @property
    def timed_out(self) -> bool:
        return bool(getattr(self.result, "timed_out", False))


class PartialFailure(HostPanelError):
    """Some steps of a multi-step job failed while others succeeded."""

    def __init__(self, message: str, report: Optional[Any] = None):
        super().__init__(message)
        self.report = report


class AccessDeniedError(HostPanelError):
    """A path outside the directories the panel is allowed to expose."""
