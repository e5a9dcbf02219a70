"""Named recurring jobs with per-name mutual exclusion."""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog
from croniter import croniter

from hostpanel.errors import PartialFailure
from hostpanel.models.jobs import ScheduledJob
from hostpanel.services.notifier import Notifier

logger = structlog.get_logger(__name__)


def nearest_minute(timestamp: float) -> datetime:
    """Local wall-clock minute closest to a timestamp, so an early wake still counts as the boundary."""
    return datetime.fromtimestamp(round(timestamp / 60.0) * 60.0).astimezone()


class _JobEntry:
    def __init__(self, name: str, cron_expression: str, func: Callable[[], Any], budget_seconds: Optional[float]):
        self.name = name
        self.cron_expression = cron_expression
        self.func = func
        self.budget_seconds = budget_seconds
        self.running = False
        self.last_run: Optional[datetime] = None
        self.last_status: Optional[str] = None
        self.last_error: Optional[str] = None

    def to_model(self) -> ScheduledJob:
        return ScheduledJob(
            name=self.name,
            cron_expression=self.cron_expression,
            last_run=self.last_run,
            running=self.running,
            last_status=self.last_status,
            last_error=self.last_error,
        )


class Scheduler:
    """
    Minute-resolution cron scheduler.

    Handles:
    - Registering jobs with cron expressions
    - Evaluating due jobs once per wall-clock minute
    - Running jobs on a worker pool, off the request path

    A job whose previous run is still in flight is skipped at its next
    trigger; it is neither queued nor caught up later.
    """

    def __init__(self, notifier: Notifier, max_workers: int = 4):
        self.notifier = notifier
        self._jobs: Dict[str, _JobEntry] = {}
        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="job")
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def register(
        self,
        name: str,
        cron_expression: str,
        func: Callable[[], Any],
        budget_seconds: Optional[float] = None,
    ) -> None:
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression}")
        with self._lock:
            if name in self._jobs:
                raise ValueError(f"Job {name} is already registered")
            self._jobs[name] = _JobEntry(name, cron_expression, func, budget_seconds)
        logger.info("job_registered", job=name, cron_expression=cron_expression)

    def jobs(self) -> List[ScheduledJob]:
        with self._lock:
            return [entry.to_model() for entry in self._jobs.values()]

    def get(self, name: str) -> Optional[ScheduledJob]:
        with self._lock:
            entry = self._jobs.get(name)
            return entry.to_model() if entry else None

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Start every job due at ``now``; returns the names actually started."""
        now = (now or datetime.now().astimezone()).replace(second=0, microsecond=0)
        with self._lock:
            due = [name for name, entry in self._jobs.items() if croniter.match(entry.cron_expression, now)]

        started = []
        for name in due:
            if self.trigger(name) is not None:
                started.append(name)
        return started

    def trigger(self, name: str) -> Optional[Future]:
        """
        Run a job now under the same exclusion rules as a scheduled tick.
        Returns None when the job is already running.
        """
        with self._lock:
            entry = self._jobs.get(name)
            if entry is None:
                raise KeyError(name)
            if entry.running:
                logger.info("job_skipped_still_running", job=name)
                return None
            entry.running = True

        try:
            return self._pool.submit(self._run, entry)
        except RuntimeError:
            # pool already shut down
            with self._lock:
                entry.running = False
            raise

    def _run(self, entry: _JobEntry) -> None:
        started_at = datetime.now().astimezone()
        started = time.monotonic()
        status, error = "success", None
        logger.info("job_started", job=entry.name)
        try:
            entry.func()
        except PartialFailure as exc:
            status, error = "failed", str(exc)
            logger.error("job_partially_failed", job=entry.name, error=error)
            details = {"job": entry.name, "error": error}
            if exc.report is not None and hasattr(exc.report, "model_dump"):
                details["report"] = exc.report.model_dump(mode="json")
            self.notifier.emit("error", f"Job {entry.name} finished with failures", details)
        except Exception as exc:
            status, error = "failed", str(exc)
            logger.error("job_failed", job=entry.name, error=error, exc_info=True)
            self.notifier.emit("error", f"Job {entry.name} failed", {"job": entry.name, "error": error})
        finally:
            duration = time.monotonic() - started
            if entry.budget_seconds is not None and duration > entry.budget_seconds:
                logger.warning("job_over_budget", job=entry.name, duration=duration, budget=entry.budget_seconds)
            with self._lock:
                entry.last_run = started_at
                entry.last_status = status
                entry.last_error = error
                entry.running = False
            logger.info("job_finished", job=entry.name, status=status, duration=round(duration, 3))

    # ------------------------------------------------------------------
    # Clock thread
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="scheduler", daemon=True)
        self._thread.start()
        logger.info("scheduler_started", jobs=len(self._jobs))

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self._pool.shutdown(wait=False)
        logger.info("scheduler_stopped")

    def _loop(self) -> None:
        last_minute = None
        while not self._stop.is_set():
            # sleep to the next whole minute so ticks never drift
            delay = 60.0 - (time.time() % 60.0)
            if self._stop.wait(delay):
                break
            minute = nearest_minute(time.time())
            if minute == last_minute:
                continue
            last_minute = minute
            try:
                self.tick(minute)
            except Exception as exc:
                logger.error("scheduler_tick_failed", error=str(exc), exc_info=True)
