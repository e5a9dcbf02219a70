import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_SERVICES = ["nginx", "mysql", "postgresql", "redis", "php8.1-fpm"]


def _split_list(raw: Optional[str]) -> List[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


class Settings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000

    # nginx layout
    sites_available_dir: str = Field(
        default="/etc/nginx/sites-available",
        description="Directory holding one virtual-host config per site",
    )
    sites_enabled_dir: str = Field(
        default="/etc/nginx/sites-enabled",
        description="Directory holding one activation symlink per enabled site",
    )
    nginx_conf_dir: str = Field(
        default="/etc/nginx",
        description="nginx configuration root, used for isolated config validation",
    )
    web_root: str = Field(
        default="/var/www",
        description="Parent directory for default document roots",
    )
    web_owner: Optional[str] = Field(
        default=None,
        description="user:group to chown new document roots to, e.g. www-data:www-data",
    )
    php_fpm_socket: str = Field(default="unix:/var/run/php/php8.1-fpm.sock")

    # Certificates
    certbot_email: Optional[str] = Field(
        default=None,
        description="Default ACME registration address used when a site is created with ssl",
    )

    # Monitoring
    monitored_services: List[str] = Field(default_factory=lambda: list(DEFAULT_SERVICES))
    history_capacity: int = Field(default=288, ge=1, description="24h at 5 minute intervals")
    cpu_alert_percent: float = Field(default=90.0, ge=0, le=100)
    memory_alert_percent: float = Field(default=90.0, ge=0, le=100)

    # Access log streaming, disabled when empty
    access_log_path: Optional[str] = "/var/log/nginx/access.log"
    access_log_poll_seconds: float = Field(default=1.0, gt=0)

    # Notifications
    alert_email: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None

    # Backups
    backup_location: str = "/var/backups/server-panel"
    backup_retention_days: int = Field(default=30, ge=0)

    # Schedules (cron expressions)
    health_cron: str = "*/5 * * * *"
    backup_cron: str = "0 2 * * *"
    renewal_cron: str = "0 3 * * *"

    # Timeouts in seconds
    validate_timeout: float = 30.0
    reload_timeout: float = 30.0
    certbot_timeout: float = 120.0
    probe_timeout: float = 5.0
    backup_step_timeout: float = 7200.0

    # Logging
    log_level: str = "INFO"
    log_format: str = Field(default="console", description="'console' or 'json'")

    @classmethod
    def from_env(cls) -> "Settings":
        services = _split_list(os.getenv("MONITORED_SERVICES")) or list(DEFAULT_SERVICES)

        return cls(
            host=os.getenv("HOST", "127.0.0.1"),
            port=_int_env("PORT", 3000),
            sites_available_dir=os.getenv("NGINX_SITES_AVAILABLE", "/etc/nginx/sites-available"),
            sites_enabled_dir=os.getenv("NGINX_SITES_ENABLED", "/etc/nginx/sites-enabled"),
            nginx_conf_dir=os.getenv("NGINX_CONF_DIR", "/etc/nginx"),
            web_root=os.getenv("WEB_ROOT", "/var/www"),
            web_owner=os.getenv("WEB_OWNER") or None,
            php_fpm_socket=os.getenv("PHP_FPM_SOCKET", "unix:/var/run/php/php8.1-fpm.sock"),
            certbot_email=os.getenv("CERTBOT_EMAIL") or None,
            monitored_services=services,
            history_capacity=_int_env("HISTORY_CAPACITY", 288),
            access_log_path=os.getenv("NGINX_ACCESS_LOG", "/var/log/nginx/access.log") or None,
            alert_email=os.getenv("ALERT_EMAIL") or None,
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=_int_env("SMTP_PORT", 587),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASS") or None,
            smtp_from=os.getenv("SMTP_FROM") or None,
            backup_location=os.getenv("BACKUP_LOCATION", "/var/backups/server-panel"),
            backup_retention_days=_int_env("BACKUP_RETENTION_DAYS", 30),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "console"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
