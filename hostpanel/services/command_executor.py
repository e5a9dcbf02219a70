import subprocess
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional, Sequence

import structlog

from hostpanel.models.command import CommandResult

logger = structlog.get_logger(__name__)


class CommandExecutor:
    """
    Run external commands with a timeout and capture their output.

    run() never raises: a missing binary, an OS error or an expired timeout
    are all turned into a CommandResult the caller inspects. Commands are
    argument vectors and are never passed through a shell. No retries.
    """

    def __init__(self, max_workers: int = 4):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cmd")

    def run(self, command: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        argv: List[str] = [str(part) for part in command]
        started = time.monotonic()
        try:
            # subprocess.run kills the child itself when the timeout expires
            completed = subprocess.run(
                argv,
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            result = CommandResult(
                command=argv,
                stdout=_as_text(exc.stdout),
                stderr=_as_text(exc.stderr),
                exit_code=-1,
                timed_out=True,
                duration_seconds=time.monotonic() - started,
            )
            logger.warning("command_timed_out", command=argv, timeout=timeout)
            return result
        except FileNotFoundError:
            logger.error("command_not_found", command=argv)
            return CommandResult(
                command=argv,
                stderr=f"{argv[0]}: command not found",
                exit_code=127,
                duration_seconds=time.monotonic() - started,
            )
        except OSError as exc:
            logger.error("command_failed_to_start", command=argv, error=str(exc))
            return CommandResult(
                command=argv,
                stderr=str(exc),
                exit_code=126,
                duration_seconds=time.monotonic() - started,
            )

        result = CommandResult(
            command=argv,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            exit_code=completed.returncode,
            duration_seconds=time.monotonic() - started,
        )
        if not result.ok:
            logger.info(
                "command_exit_nonzero",
                command=argv,
                exit_code=result.exit_code,
                stderr=result.stderr.strip()[:500],
            )
        return result

    def submit(self, command: Sequence[str], timeout: Optional[float] = None) -> "Future[CommandResult]":
        """Run the command on the executor's thread pool and return a future."""
        return self._pool.submit(self.run, command, timeout)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False)


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
