import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from hostpanel.errors import PartialFailure
from hostpanel.models.jobs import BackupReport, BackupStep
from hostpanel.services.command_executor import CommandExecutor
from hostpanel.services.notifier import Notifier

logger = structlog.get_logger(__name__)


class BackupService:
    """
    Daily backup of the web root, the nginx config tree and all databases.

    Each archive step runs independently, so a failing database dump does
    not prevent the file archives. Old files are pruned afterwards.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        notifier: Notifier,
        location: str,
        retention_days: int = 30,
        web_root: str = "/var/www",
        nginx_conf_dir: str = "/etc/nginx",
        step_timeout: Optional[float] = 7200.0,
    ):
        self.executor = executor
        self.notifier = notifier
        self.location = Path(location)
        self.retention_days = retention_days
        self.web_root = web_root
        self.nginx_conf_dir = nginx_conf_dir
        self.step_timeout = step_timeout

    def run(self, now: Optional[datetime] = None) -> BackupReport:
        now = now or datetime.now()
        stamp = now.strftime("%Y-%m-%d")
        self.location.mkdir(parents=True, exist_ok=True)

        report = BackupReport(started_at=now, location=str(self.location))

        sites_archive = self.location / f"sites-{stamp}.tar.gz"
        nginx_archive = self.location / f"nginx-{stamp}.tar.gz"
        mysql_dump = self.location / f"mysql-{stamp}.sql"

        report.steps.append(self._step("sites", sites_archive, ["tar", "-czf", str(sites_archive), self.web_root]))
        report.steps.append(
            self._step("nginx", nginx_archive, ["tar", "-czf", str(nginx_archive), self.nginx_conf_dir])
        )
        report.steps.append(
            self._step(
                "databases",
                mysql_dump,
                ["mysqldump", "--all-databases", f"--result-file={mysql_dump}"],
            )
        )

        report.pruned = self.prune(now)
        return report

    def _step(self, name: str, target: Path, command: Sequence[str]) -> BackupStep:
        result = self.executor.run(command, timeout=self.step_timeout)
        logger.info(
            "backup_step_finished",
            step=name,
            target=str(target),
            success=result.ok,
            duration=round(result.duration_seconds, 1),
        )
        if result.ok:
            return BackupStep(name=name, target=str(target), success=True)
        return BackupStep(name=name, target=str(target), success=False, error=result.describe_failure())

    def prune(self, now: Optional[datetime] = None) -> List[str]:
        """Delete files in the backup location older than the retention window."""
        cutoff = (now or datetime.now()).timestamp() - self.retention_days * 86400
        removed = []
        for path in sorted(self.location.iterdir()):
            if not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed.append(str(path))
            except OSError as exc:
                logger.warning("backup_prune_failed", path=str(path), error=str(exc))
        if removed:
            logger.info("backup_pruned", files=len(removed))
        return removed

    def run_job(self) -> BackupReport:
        """Scheduler entry point: raise PartialFailure when any step failed."""
        started = time.monotonic()
        report = self.run()
        if report.partial:
            failed = ", ".join(step.name for step in report.failed_steps)
            raise PartialFailure(f"Backup steps failed: {failed}", report=report)

        logger.info("backup_completed", duration=round(time.monotonic() - started, 1))
        self.notifier.emit(
            "success",
            "Daily backup completed successfully",
            {"location": report.location, "pruned": len(report.pruned)},
        )
        return report
