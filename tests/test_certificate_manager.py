import pytest

from hostpanel.errors import ExternalCommandError
from hostpanel.models.certificate import CertificateStatus


def test_obtain_success_marks_issued_and_reloads(certificates, executor):
    record = certificates.obtain("example.com", "admin@example.com")

    assert record.status is CertificateStatus.ISSUED
    assert record.last_error is None
    assert certificates.get("example.com") == record

    certbot = executor.commands_starting_with("certbot")
    assert certbot == [
        [
            "certbot",
            "--nginx",
            "-d",
            "example.com",
            "--email",
            "admin@example.com",
            "--agree-tos",
            "--non-interactive",
            "--redirect",
        ]
    ]
    assert executor.calls[-1] == ["systemctl", "reload", "nginx"]


def test_obtain_failure_records_error_without_reload(certificates, executor):
    executor.fail(("certbot", "--nginx"), stderr="DNS problem: NXDOMAIN")

    record = certificates.obtain("example.com", "admin@example.com")

    assert record.status is CertificateStatus.FAILED
    assert "NXDOMAIN" in record.last_error
    assert executor.commands_starting_with("systemctl") == []


def test_obtain_timeout_is_reported_as_failure(certificates, executor):
    executor.fail(("certbot",), timed_out=True)

    record = certificates.obtain("example.com", "admin@example.com")

    assert record.status is CertificateStatus.FAILED
    assert "timed out" in record.last_error


def test_renew_all_issues_one_bulk_call(certificates, executor):
    certificates.obtain("a.example.com", "admin@example.com")
    certificates.obtain("b.example.com", "admin@example.com")

    records = certificates.renew_all()

    assert executor.commands_starting_with("certbot", "renew") == [
        ["certbot", "renew", "--quiet", "--no-self-upgrade"]
    ]
    assert [record.domain for record in records] == ["a.example.com", "b.example.com"]
    assert all(record.status is CertificateStatus.ISSUED for record in records)


def test_renew_all_failure_marks_records_and_raises(certificates, executor):
    certificates.obtain("a.example.com", "admin@example.com")
    executor.fail(("certbot", "renew"), stderr="rate limited")

    with pytest.raises(ExternalCommandError):
        certificates.renew_all()

    record = certificates.get("a.example.com")
    assert record.status is CertificateStatus.FAILED
    assert "rate limited" in record.last_error
    assert len(executor.commands_starting_with("certbot", "renew")) == 1


def test_installed_certificates_parses_certbot_output(certificates, executor):
    executor.output(
        ("certbot", "certificates"),
        "Found the following certs:\n"
        "  Certificate Name: example.com\n"
        "    Domains: example.com www.example.com\n"
        "  Certificate Name: shop.example.org\n"
        "    Domains: shop.example.org\n",
    )

    assert certificates.installed_certificates() == ["example.com", "shop.example.org"]
