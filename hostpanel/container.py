"""Wires the hosting services together for one panel process."""

from typing import List

import structlog

from hostpanel.config import Settings
from hostpanel.models.certificate import CertificateRecord
from hostpanel.services.access_log import AccessLogTailer
from hostpanel.services.backup import BackupService
from hostpanel.services.certificate_manager import CertificateManager
from hostpanel.services.command_executor import CommandExecutor
from hostpanel.services.health_sampler import HealthSampler
from hostpanel.services.host_monitor import HostProbes
from hostpanel.services.notifier import BroadcastSink, EmailSender, Notifier
from hostpanel.services.orchestrator import Orchestrator
from hostpanel.services.scheduler import Scheduler
from hostpanel.services.site_repository import SiteRepository
from hostpanel.services.system_state import SystemState

logger = structlog.get_logger(__name__)

HEALTH_JOB = "health-sample"
BACKUP_JOB = "backup"
RENEWAL_JOB = "certificate-renewal"


class Panel:
    """All long-lived services of the panel, with a start/stop lifecycle."""

    def __init__(self, settings: Settings, sink: BroadcastSink):
        self.settings = settings
        self.executor = CommandExecutor()

        email_sender = None
        if settings.smtp_host:
            email_sender = EmailSender(
                host=settings.smtp_host,
                port=settings.smtp_port,
                from_address=settings.smtp_from,
                user=settings.smtp_user,
                password=settings.smtp_password,
            )
        self.notifier = Notifier(sink, email_sender=email_sender, alert_email=settings.alert_email)

        self.state = SystemState(settings.history_capacity)
        self.sites = SiteRepository(
            available_dir=settings.sites_available_dir,
            enabled_dir=settings.sites_enabled_dir,
            executor=self.executor,
            nginx_conf_dir=settings.nginx_conf_dir,
            validate_timeout=settings.validate_timeout,
            reload_timeout=settings.reload_timeout,
        )
        self.certificates = CertificateManager(
            self.executor,
            self.sites,
            obtain_timeout=settings.certbot_timeout,
        )
        self.sampler = HealthSampler(
            state=self.state,
            probes=HostProbes(self.executor, probe_timeout=settings.probe_timeout),
            notifier=self.notifier,
            services=settings.monitored_services,
            cpu_alert_percent=settings.cpu_alert_percent,
            memory_alert_percent=settings.memory_alert_percent,
            probe_timeout=settings.probe_timeout,
            counters=lambda: self.orchestrator.counters(),
        )
        self.backups = BackupService(
            self.executor,
            self.notifier,
            location=settings.backup_location,
            retention_days=settings.backup_retention_days,
            web_root=settings.web_root,
            nginx_conf_dir=settings.nginx_conf_dir,
            step_timeout=settings.backup_step_timeout,
        )

        self.scheduler = Scheduler(self.notifier)
        self.scheduler.register(HEALTH_JOB, settings.health_cron, self.sampler.tick, budget_seconds=60)
        self.scheduler.register(
            BACKUP_JOB,
            settings.backup_cron,
            self.backups.run_job,
            budget_seconds=settings.backup_step_timeout * 3,
        )
        self.scheduler.register(RENEWAL_JOB, settings.renewal_cron, self.renew_certificates, budget_seconds=900)

        self.orchestrator = Orchestrator(
            settings=settings,
            executor=self.executor,
            sites=self.sites,
            certificates=self.certificates,
            notifier=self.notifier,
            state=self.state,
            scheduler=self.scheduler,
        )

        self.access_log = None
        if settings.access_log_path:
            self.access_log = AccessLogTailer(
                settings.access_log_path,
                self.notifier,
                poll_interval=settings.access_log_poll_seconds,
            )

    def renew_certificates(self) -> List[CertificateRecord]:
        records = self.certificates.renew_all()
        logger.info("certificate_renewal_check_completed", certificates=len(records))
        return records

    def start(self) -> None:
        self.scheduler.start()
        # first sample right away instead of waiting for the next 5 minute mark
        self.scheduler.trigger(HEALTH_JOB)
        if self.access_log is not None:
            self.access_log.start()
        logger.info("panel_started")

    def stop(self) -> None:
        if self.access_log is not None:
            self.access_log.stop()
        self.scheduler.stop()
        self.sampler.close()
        self.executor.shutdown()
        logger.info("panel_stopped")
