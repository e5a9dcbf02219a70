import os
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import structlog

from hostpanel.errors import ConflictError, ExternalCommandError, NotFoundError
from hostpanel.models.site import ParsedVhost, Site, UnparseableConfig, VhostMetadata
from hostpanel.services.command_executor import CommandExecutor

logger = structlog.get_logger(__name__)

_SERVER_NAME_PATTERN = re.compile(r"server_name\s+([^;]+);")
_ROOT_PATTERN = re.compile(r"^\s*root\s+([^;]+);", re.MULTILINE)

# Config files that belong to the distribution, not to a hosted site
_IGNORED_CONFIGS = {"default"}


def parse_vhost(text: str) -> ParsedVhost:
    """
    Best-effort extraction of site metadata from an nginx config.

    Config files may be hand-edited, so a missing server_name is reported as
    an UnparseableConfig value rather than raised.
    """
    match = _SERVER_NAME_PATTERN.search(text)
    if not match or not match.group(1).strip():
        return UnparseableConfig(reason="no server_name directive found")

    root_match = _ROOT_PATTERN.search(text)
    return VhostMetadata(
        server_name=match.group(1).strip(),
        document_root=root_match.group(1).strip() if root_match else None,
        ssl_enabled="ssl_certificate" in text,
        php_enabled="fastcgi_pass" in text,
    )


class KeyedLock:
    """Hands out one lock per key, e.g. per site name."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def __call__(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())


class SiteRepository:
    """
    Owns the nginx sites-available / sites-enabled directories.

    A site is "enabled" when its activation marker (a symlink in the enabled
    directory pointing at the config) exists. The marker is only ever created
    for configs that nginx accepted, and every marker change is serialized per
    site name.
    """

    def __init__(
        self,
        available_dir: str,
        enabled_dir: str,
        executor: CommandExecutor,
        nginx_conf_dir: str = "/etc/nginx",
        validate_timeout: float = 30.0,
        reload_timeout: float = 30.0,
        nginx_bin: str = "nginx",
        reload_command: Optional[Sequence[str]] = None,
    ):
        self.available_dir = Path(available_dir)
        self.enabled_dir = Path(enabled_dir)
        self.nginx_conf_dir = Path(nginx_conf_dir)
        self.executor = executor
        self.validate_timeout = validate_timeout
        self.reload_timeout = reload_timeout
        self.nginx_bin = nginx_bin
        self.reload_command = list(reload_command or ["systemctl", "reload", "nginx"])
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def config_path(self, name: str) -> Path:
        return self.available_dir / name

    def marker_path(self, name: str) -> Path:
        return self.enabled_dir / name

    def exists(self, name: str) -> bool:
        return os.path.lexists(self.config_path(name))

    def is_enabled(self, name: str) -> bool:
        return os.path.lexists(self.marker_path(name))

    def list(self) -> List[Site]:
        try:
            names = sorted(
                entry.name
                for entry in self.available_dir.iterdir()
                if not entry.name.startswith(".") and entry.name not in _IGNORED_CONFIGS
            )
        except OSError as exc:
            logger.error("sites_dir_unreadable", path=str(self.available_dir), error=str(exc))
            return []

        return [self._load(name) for name in names]

    def get(self, name: str) -> Optional[Site]:
        if not self.exists(name):
            return None
        return self._load(name)

    def _load(self, name: str) -> Site:
        path = self.config_path(name)
        enabled = self.is_enabled(name)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("site_config_unreadable", site=name, error=str(exc))
            return Site(
                name=name,
                domain=name,
                enabled=enabled,
                config_path=str(path),
                parse_error=f"unreadable: {exc}",
            )

        parsed = parse_vhost(text)
        if isinstance(parsed, UnparseableConfig):
            return Site(
                name=name,
                domain=name,
                enabled=enabled,
                ssl_enabled="ssl_certificate" in text,
                config_path=str(path),
                parse_error=parsed.reason,
            )

        return Site(
            name=name,
            domain=parsed.server_name,
            document_root=parsed.document_root,
            php_enabled=parsed.php_enabled,
            ssl_enabled=parsed.ssl_enabled,
            enabled=enabled,
            config_path=str(path),
        )

    # ------------------------------------------------------------------
    # Web server commands
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Validate the complete live configuration (nginx -t)."""
        self.executor.run([self.nginx_bin, "-t", "-q"], timeout=self.validate_timeout).raise_for_status()

    def reload(self) -> None:
        """Validate and then reload the web server."""
        self.validate()
        self.executor.run(self.reload_command, timeout=self.reload_timeout).raise_for_status()
        logger.info("webserver_reloaded")

    def _validate_candidate(self, name: str, candidate: Path) -> None:
        """
        Validate a single not-yet-installed config by pointing nginx at a
        throwaway main config that includes only the candidate. The harness
        lives in the nginx conf dir so relative includes (snippets/...) resolve.
        """
        harness = self.nginx_conf_dir / f".hostpanel-check-{name}.conf"
        harness.write_text(
            "events {}\n"
            "http {\n"
            f"    include {candidate};\n"
            "}\n",
            encoding="utf-8",
        )
        try:
            self.executor.run(
                [self.nginx_bin, "-t", "-q", "-c", str(harness)],
                timeout=self.validate_timeout,
            ).raise_for_status()
        finally:
            harness.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, site: Site, rendered_config: str) -> Site:
        """
        Install and enable a new site.

        Either the config and its marker both end up present and the server
        is reloaded, or neither is present and the error is raised.
        """
        name = site.name
        with self._locks(name):
            final = self.config_path(name)
            if os.path.lexists(final):
                raise ConflictError(f"Site {name} already exists")

            candidate = self.available_dir / f".{name}.tmp"
            candidate.write_text(rendered_config, encoding="utf-8")
            try:
                self._validate_candidate(name, candidate)
            except ExternalCommandError:
                candidate.unlink(missing_ok=True)
                logger.warning("site_config_rejected", site=name)
                raise

            os.replace(candidate, final)
            marker = self.marker_path(name)
            try:
                if os.path.lexists(marker):
                    # stale marker left behind by a hand-removed config
                    marker.unlink()
                os.symlink(final, marker)
                self.reload()
            except (ExternalCommandError, OSError):
                marker.unlink(missing_ok=True)
                final.unlink(missing_ok=True)
                logger.error("site_create_rolled_back", site=name)
                raise

        logger.info("site_created", site=name, domain=site.domain)
        return self._load(name)

    def set_enabled(self, name: str, enabled: bool) -> Site:
        with self._locks(name):
            if not self.exists(name):
                raise NotFoundError(f"Site {name} does not exist")

            was_enabled = self.is_enabled(name)
            if was_enabled == enabled:
                return self._load(name)

            self._set_marker(name, enabled)
            try:
                self.reload()
            except ExternalCommandError:
                self._set_marker(name, was_enabled)
                logger.error("site_toggle_rolled_back", site=name, enabled=enabled)
                raise

        logger.info("site_toggled", site=name, enabled=enabled)
        return self._load(name)

    def delete(self, name: str) -> bool:
        """Remove marker and config. Returns False if there was nothing to remove."""
        with self._locks(name):
            removed = False
            marker = self.marker_path(name)
            if os.path.lexists(marker):
                marker.unlink()
                removed = True
            config = self.config_path(name)
            if os.path.lexists(config):
                config.unlink()
                removed = True
            if removed:
                self.reload()

        if removed:
            logger.info("site_deleted", site=name)
        return removed

    def _set_marker(self, name: str, enabled: bool) -> None:
        marker = self.marker_path(name)
        if enabled:
            if not os.path.lexists(marker):
                os.symlink(self.config_path(name), marker)
        else:
            marker.unlink(missing_ok=True)
