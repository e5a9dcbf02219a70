import re
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

import structlog

from hostpanel.errors import ExternalCommandError
from hostpanel.models.certificate import CertificateRecord, CertificateStatus
from hostpanel.services.command_executor import CommandExecutor
from hostpanel.services.site_repository import SiteRepository

logger = structlog.get_logger(__name__)

_CERT_NAME_PATTERN = re.compile(r"Certificate Name:\s*(\S+)")


class CertificateManager:
    """
    Requests and renews certificates through certbot and remembers the last
    known state per domain (last write wins).
    """

    def __init__(
        self,
        executor: CommandExecutor,
        sites: SiteRepository,
        certbot_bin: str = "certbot",
        obtain_timeout: float = 120.0,
        renew_timeout: float = 600.0,
    ):
        self.executor = executor
        self.sites = sites
        self.certbot_bin = certbot_bin
        self.obtain_timeout = obtain_timeout
        self.renew_timeout = renew_timeout
        self._records: Dict[str, CertificateRecord] = {}
        self._lock = threading.Lock()

    def get(self, domain: str) -> Optional[CertificateRecord]:
        with self._lock:
            return self._records.get(domain)

    def records(self) -> List[CertificateRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda record: record.domain)

    def _store(self, record: CertificateRecord) -> CertificateRecord:
        with self._lock:
            self._records[record.domain] = record
        return record

    def obtain(self, domain: str, email: str) -> CertificateRecord:
        """
        Request a certificate for one domain. Failures are recorded on the
        returned record (status failed + last_error), not raised.
        """
        started = datetime.now(timezone.utc)
        self._store(
            CertificateRecord(
                domain=domain,
                email=email,
                status=CertificateStatus.REQUESTED,
                last_attempt=started,
            )
        )
        logger.info("certificate_requested", domain=domain)

        result = self.executor.run(
            [
                self.certbot_bin,
                "--nginx",
                "-d",
                domain,
                "--email",
                email,
                "--agree-tos",
                "--non-interactive",
                "--redirect",
            ],
            timeout=self.obtain_timeout,
        )
        if not result.ok:
            logger.error("certificate_request_failed", domain=domain, error=result.describe_failure())
            return self._store(
                CertificateRecord(
                    domain=domain,
                    email=email,
                    status=CertificateStatus.FAILED,
                    last_attempt=started,
                    last_error=result.describe_failure(),
                )
            )

        try:
            self.sites.reload()
        except ExternalCommandError as exc:
            logger.error("certificate_reload_failed", domain=domain, error=str(exc))
            return self._store(
                CertificateRecord(
                    domain=domain,
                    email=email,
                    status=CertificateStatus.FAILED,
                    last_attempt=started,
                    last_error=f"certificate issued but reload failed: {exc}",
                )
            )

        logger.info("certificate_issued", domain=domain)
        return self._store(
            CertificateRecord(
                domain=domain,
                email=email,
                status=CertificateStatus.ISSUED,
                last_attempt=started,
            )
        )

    def renew_all(self) -> List[CertificateRecord]:
        """
        Run one bulk renewal for every managed certificate. On failure all
        tracked records are marked failed and ExternalCommandError is raised;
        nothing is retried within the cycle.
        """
        started = datetime.now(timezone.utc)
        with self._lock:
            for domain, record in self._records.items():
                self._records[domain] = record.model_copy(
                    update={"status": CertificateStatus.RENEWING, "last_attempt": started}
                )

        result = self.executor.run(
            [self.certbot_bin, "renew", "--quiet", "--no-self-upgrade"],
            timeout=self.renew_timeout,
        )

        if result.ok:
            update = {"status": CertificateStatus.ISSUED, "last_error": None}
        else:
            update = {"status": CertificateStatus.FAILED, "last_error": result.describe_failure()}

        with self._lock:
            for domain, record in self._records.items():
                self._records[domain] = record.model_copy(update=update)

        if not result.ok:
            logger.error("certificate_renewal_failed", error=result.describe_failure())
            raise ExternalCommandError(result.describe_failure(), result=result)

        logger.info("certificate_renewal_completed", certificates=len(self._records))
        return self.records()

    def installed_certificates(self) -> List[str]:
        """Certificate names currently installed, as reported by certbot."""
        result = self.executor.run([self.certbot_bin, "certificates"], timeout=self.obtain_timeout)
        if not result.ok:
            logger.warning("certificate_listing_failed", error=result.describe_failure())
            return []
        return _CERT_NAME_PATTERN.findall(result.stdout)
