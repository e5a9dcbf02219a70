import os
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from hostpanel.config import Settings
from hostpanel.errors import (
    AccessDeniedError,
    ConflictError,
    HostPanelError,
    NotFoundError,
    ValidationError,
)
from hostpanel.models.certificate import CertificateStatus
from hostpanel.models.files import DirectoryListing, FileEntry
from hostpanel.models.health import SystemStats
from hostpanel.models.operation import OperationResult
from hostpanel.models.site import Site
from hostpanel.services.certificate_manager import CertificateManager
from hostpanel.services.command_executor import CommandExecutor
from hostpanel.services.config_renderer import (
    render_index_page,
    render_vhost,
    slugify,
    validate_document_root,
    validate_domain,
)
from hostpanel.services.notifier import Notifier
from hostpanel.services.scheduler import Scheduler
from hostpanel.services.site_repository import SiteRepository
from hostpanel.services.system_state import SystemState

logger = structlog.get_logger(__name__)

_SYSTEM_DATABASES = {"information_schema", "mysql", "performance_schema", "sys"}


class Orchestrator:
    """
    Facade over the hosting services used by the HTTP layer.

    Every operation returns an OperationResult; HostPanelError subclasses
    (and filesystem errors) are translated into success=False results with
    the error type name, never raised to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        executor: CommandExecutor,
        sites: SiteRepository,
        certificates: CertificateManager,
        notifier: Notifier,
        state: SystemState,
        scheduler: Optional[Scheduler] = None,
    ):
        self.settings = settings
        self.executor = executor
        self.sites = sites
        self.certificates = certificates
        self.notifier = notifier
        self.state = state
        self.scheduler = scheduler
        self._started = time.monotonic()

    # ------------------------------------------------------------------
    # Sites
    # ------------------------------------------------------------------

    def create_site(
        self,
        domain: str,
        directory: Optional[str] = None,
        php: bool = False,
        ssl: bool = False,
    ) -> OperationResult:
        try:
            name = _normalize_domain(domain)
            document_root = self._document_root(name, directory)
            config = render_vhost(name, document_root, php, self.settings.php_fpm_socket)
            if self.sites.exists(name):
                raise ConflictError(f"Site {name} already exists")

            root = Path(document_root)
            created_root = not root.exists()
            had_index = (root / "index.html").exists()
            try:
                self._prepare_document_root(name, document_root, php, ssl)
                site = self.sites.create(
                    Site(
                        name=name,
                        domain=name,
                        document_root=document_root,
                        php_enabled=php,
                        enabled=True,
                        config_path=str(self.sites.config_path(name)),
                    ),
                    config,
                )
            except (HostPanelError, OSError):
                self._discard_document_root(root, created_root, had_index)
                raise
        except (HostPanelError, OSError) as exc:
            return _failure("create_site", exc)

        data = {"site": site.model_dump(mode="json"), "certificate": None}
        if ssl:
            data["certificate"] = self._certificate_for_new_site(name)

        message = f"Site {name} created successfully"
        self.notifier.emit("success", message, {"site": name})
        return OperationResult(success=True, message=message, data=data)

    def _document_root(self, name: str, directory: Optional[str]) -> str:
        """
        The default root is <web_root>/<name>. A caller-supplied directory
        must resolve to a path strictly inside web_root, since it is chowned
        and chmodded afterwards.
        """
        if not directory:
            return f"{self.settings.web_root.rstrip('/')}/{name}"
        validate_document_root(directory)
        web_root = os.path.realpath(self.settings.web_root)
        resolved = os.path.realpath(directory)
        if resolved == web_root or os.path.commonpath([web_root, resolved]) != web_root:
            raise ValidationError(f"Document root must be inside {self.settings.web_root}")
        return directory

    def _discard_document_root(self, root: Path, created_root: bool, had_index: bool) -> None:
        try:
            if created_root:
                shutil.rmtree(root)
            elif not had_index:
                (root / "index.html").unlink(missing_ok=True)
        except OSError as exc:
            logger.error("document_root_cleanup_failed", path=str(root), error=str(exc))
        else:
            logger.info("document_root_discarded", path=str(root), removed_directory=created_root)

    def _prepare_document_root(self, domain: str, document_root: str, php: bool, ssl: bool) -> None:
        root = Path(document_root)
        root.mkdir(parents=True, exist_ok=True)
        index = root / "index.html"
        if not index.exists():
            index.write_text(render_index_page(domain, document_root, php, ssl), encoding="utf-8")
        if self.settings.web_owner:
            self.executor.run(
                ["chown", "-R", self.settings.web_owner, document_root],
                timeout=self.settings.validate_timeout,
            ).raise_for_status()
        os.chmod(root, 0o755)

    def _certificate_for_new_site(self, name: str) -> Optional[dict]:
        if not self.settings.certbot_email:
            logger.warning("certificate_skipped_no_email", site=name)
            return None
        record = self.certificates.obtain(name, self.settings.certbot_email)
        if record.status is CertificateStatus.FAILED:
            logger.warning("certificate_for_new_site_failed", site=name, error=record.last_error)
        return record.model_dump(mode="json")

    def toggle_site(self, name: str, enabled: bool) -> OperationResult:
        try:
            site_name = _normalize_domain(name)
            site = self.sites.set_enabled(site_name, enabled)
        except (HostPanelError, OSError) as exc:
            return _failure("toggle_site", exc)

        message = f"Site {site_name} {'enabled' if enabled else 'disabled'}"
        self.notifier.emit("success", message, {"site": site_name, "enabled": enabled})
        return OperationResult(success=True, message=message, data=site.model_dump(mode="json"))

    def delete_site(self, name: str) -> OperationResult:
        try:
            site_name = _normalize_domain(name)
            removed = self.sites.delete(site_name)
        except (HostPanelError, OSError) as exc:
            return _failure("delete_site", exc)

        data = {"name": site_name, "removed": removed}
        if not removed:
            return OperationResult(success=True, message=f"Site {site_name} does not exist", data=data)

        message = f"Site {site_name} deleted"
        self.notifier.emit("success", message, {"site": site_name})
        return OperationResult(success=True, message=message, data=data)

    def list_sites(self) -> OperationResult:
        return OperationResult(
            success=True,
            data=[site.model_dump(mode="json") for site in self.sites.list()],
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def list_files(self, path: Optional[str] = None) -> OperationResult:
        """
        List one directory below the web root or the nginx site directories.
        Symlinks are reported, not followed.
        """
        try:
            directory = self._browsable_directory(path or self.settings.web_root)
            files: List[FileEntry] = []
            with os.scandir(directory) as entries:
                for entry in entries:
                    info = entry.stat(follow_symlinks=False)
                    files.append(
                        FileEntry(
                            name=entry.name,
                            path=os.path.join(directory, entry.name),
                            is_directory=entry.is_dir(follow_symlinks=False),
                            size=info.st_size,
                            modified=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
                        )
                    )
        except (HostPanelError, OSError) as exc:
            return _failure("list_files", exc)

        files.sort(key=lambda item: (not item.is_directory, item.name))
        listing = DirectoryListing(path=directory, files=files)
        return OperationResult(success=True, data=listing.model_dump(mode="json"))

    def _browsable_directory(self, path: str) -> str:
        if not path.startswith("/"):
            raise ValidationError("Path must be absolute")
        resolved = os.path.realpath(path)
        allowed = [
            os.path.realpath(root)
            for root in (
                self.settings.web_root,
                self.settings.sites_available_dir,
                self.settings.sites_enabled_dir,
            )
        ]
        if not any(os.path.commonpath([root, resolved]) == root for root in allowed):
            raise AccessDeniedError(f"Access to {path} is not allowed")
        if not os.path.exists(resolved):
            raise NotFoundError(f"Directory {path} does not exist")
        if not os.path.isdir(resolved):
            raise ValidationError(f"{path} is not a directory")
        return resolved

    # ------------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------------

    def obtain_certificate(self, domain: str, email: str) -> OperationResult:
        try:
            if not domain or not email:
                raise ValidationError("Domain and email are required")
            name = _normalize_domain(domain)
            email = email.strip()
            if "@" not in email or any(char.isspace() for char in email):
                raise ValidationError(f"Invalid email address {email!r}")
        except ValidationError as exc:
            return _failure("obtain_certificate", exc)

        record = self.certificates.obtain(name, email)
        if record.status is CertificateStatus.FAILED:
            return OperationResult(
                success=False,
                error=f"Failed to obtain SSL: {record.last_error}",
                error_type="ExternalCommandError",
                data=record.model_dump(mode="json"),
            )

        message = f"SSL certificate obtained for {name}"
        self.notifier.emit("success", message, {"domain": name})
        return OperationResult(success=True, message=message, data=record.model_dump(mode="json"))

    def list_certificates(self) -> OperationResult:
        return OperationResult(
            success=True,
            data=[record.model_dump(mode="json") for record in self.certificates.records()],
        )

    # ------------------------------------------------------------------
    # Stats and jobs
    # ------------------------------------------------------------------

    def get_stats(self) -> OperationResult:
        cpu = self.state.cpu.latest()
        memory = self.state.memory.latest()
        disk = self.state.disk
        counters = self.counters()

        stats = SystemStats(
            cpu_percent=cpu.value if cpu else None,
            memory_percent=memory.usage_percent if memory else None,
            disk_usage_percent=disk.usage_percent if disk else None,
            uptime_seconds=int(time.monotonic() - self._started),
            sites_active=counters["sites"]["active"],
            sites_total=counters["sites"]["total"],
            certificates_active=counters["ssl"]["active"],
            databases_total=counters["databases"]["total"],
            services=self.state.services,
            cpu_history=self.state.cpu.snapshot(),
            memory_history=self.state.memory.snapshot(),
            last_update=self.state.last_update,
        )
        return OperationResult(success=True, data=stats.model_dump(mode="json"))

    def counters(self) -> Dict[str, Dict[str, int]]:
        """Site, certificate and database counters, also pushed with every stats event."""
        sites = self.sites.list()
        return {
            "sites": {"active": sum(1 for site in sites if site.enabled), "total": len(sites)},
            "ssl": {"active": len(self.certificates.installed_certificates())},
            "databases": {"total": self._count_databases()},
        }

    def _count_databases(self) -> int:
        result = self.executor.run(["mysql", "-N", "-e", "SHOW DATABASES"], timeout=self.settings.validate_timeout)
        if not result.ok:
            return 0
        names = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return len([name for name in names if name not in _SYSTEM_DATABASES])

    def list_jobs(self) -> OperationResult:
        jobs = self.scheduler.jobs() if self.scheduler else []
        return OperationResult(success=True, data=[job.model_dump(mode="json") for job in jobs])


def _normalize_domain(value: str) -> str:
    """
    Lower-case and validate a domain or site name. Input that slug
    normalization would alter is rejected rather than silently rewritten.
    """
    domain = (value or "").strip().lower()
    if not domain:
        raise ValidationError("Domain is required")
    if slugify(domain) != domain:
        raise ValidationError(f"Domain {domain!r} contains characters outside [A-Za-z0-9.-]")
    return validate_domain(domain)


def _failure(operation: str, exc: Exception) -> OperationResult:
    logger.warning("operation_failed", operation=operation, error_type=type(exc).__name__, error=str(exc))
    return OperationResult(success=False, error=str(exc), error_type=type(exc).__name__)
