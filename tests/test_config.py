from hostpanel.config import Settings, get_settings


def test_settings_from_env_parses_monitored_services(monkeypatch):
    monkeypatch.setenv("MONITORED_SERVICES", "nginx, mysql,redis")

    settings = Settings.from_env()
    assert settings.monitored_services == ["nginx", "mysql", "redis"]


def test_settings_defaults_without_env(monkeypatch):
    for name in ("MONITORED_SERVICES", "BACKUP_RETENTION_DAYS", "ALERT_EMAIL", "WEB_ROOT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()
    assert settings.monitored_services == ["nginx", "mysql", "postgresql", "redis", "php8.1-fpm"]
    assert settings.backup_retention_days == 30
    assert settings.history_capacity == 288
    assert settings.alert_email is None
    assert settings.web_root == "/var/www"
    assert settings.health_cron == "*/5 * * * *"


def test_settings_reads_smtp_and_backup_values(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "465")
    monkeypatch.setenv("ALERT_EMAIL", "ops@example.com")
    monkeypatch.setenv("BACKUP_RETENTION_DAYS", "7")
    monkeypatch.setenv("BACKUP_LOCATION", "/srv/backups")

    settings = Settings.from_env()
    assert settings.smtp_host == "smtp.example.com"
    assert settings.smtp_port == 465
    assert settings.alert_email == "ops@example.com"
    assert settings.backup_retention_days == 7
    assert settings.backup_location == "/srv/backups"


def test_get_settings_is_cached(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.setenv("CERTBOT_EMAIL", "admin@example.local")
    s1 = get_settings()
    s2 = get_settings()
    assert s1 is s2
    assert s1.certbot_email == "admin@example.local"
    get_settings.cache_clear()
