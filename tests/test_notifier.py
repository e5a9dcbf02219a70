import smtplib
from unittest.mock import MagicMock

from hostpanel.models.notification import NotificationKind
from hostpanel.services.notifier import EmailSender, Notifier


def test_emit_broadcasts_notification(notifier, sink):
    notification = notifier.emit("success", "Site example.com created", {"site": "example.com"})

    events = sink.of_type("notification")
    assert len(events) == 1
    payload = events[0]["data"]
    assert payload["id"] == notification.id
    assert payload["kind"] == "success"
    assert payload["message"] == "Site example.com created"
    assert payload["details"] == {"site": "example.com"}
    assert "timestamp" in payload


def test_notification_ids_are_unique(notifier):
    ids = {notifier.emit("info", "hello").id for _ in range(20)}
    assert len(ids) == 20


def test_error_sends_email_only_when_configured(sink):
    sender = MagicMock()
    with_email = Notifier(sink, email_sender=sender, alert_email="ops@example.com")
    without_address = Notifier(sink, email_sender=sender, alert_email=None)

    with_email.emit("success", "fine")
    without_address.emit("error", "not mailed")
    with_email.emit("error", "Daily backup failed", {"step": "databases"})

    sender.send.assert_called_once()
    to, subject, body = sender.send.call_args.args
    assert to == "ops@example.com"
    assert subject == "Server Alert: Daily backup failed"
    assert "databases" in body


def test_email_failure_does_not_raise(sink):
    sender = MagicMock()
    sender.send.side_effect = smtplib.SMTPException("relay denied")
    notifier = Notifier(sink, email_sender=sender, alert_email="ops@example.com")

    notification = notifier.emit("error", "High CPU usage detected")

    assert notification.kind is NotificationKind.ERROR
    assert len(sink.of_type("notification")) == 1


def test_alert_emits_once_per_crossing(notifier, sink):
    assert notifier.alert("memory", True, "High memory usage detected") is not None
    assert notifier.alert("memory", True, "High memory usage detected") is None
    assert notifier.alert("memory", True, "High memory usage detected") is None
    assert len(sink.of_type("notification")) == 1

    # dropping below re-arms, the next breach is a new crossing
    assert notifier.alert("memory", False, "High memory usage detected") is None
    assert notifier.alert("memory", True, "High memory usage detected") is not None
    assert len(sink.of_type("notification")) == 2


def test_alert_keys_are_independent(notifier, sink):
    notifier.alert("cpu", True, "High CPU usage detected")
    notifier.alert("memory", True, "High memory usage detected")

    assert len(sink.of_type("notification")) == 2


def test_broadcast_failure_is_not_raised(monkeypatch):
    class BrokenSink:
        def publish(self, event):
            raise ConnectionError("client gone")

    notifier = Notifier(BrokenSink())
    notifier.emit("info", "still fine")


def test_email_sender_uses_starttls_and_login(monkeypatch):
    server = MagicMock()
    smtp = MagicMock(return_value=server)
    monkeypatch.setattr("hostpanel.services.notifier.smtplib.SMTP", smtp)

    sender = EmailSender("smtp.example.com", 587, from_address="panel@example.com", user="u", password="p")
    sender.send("ops@example.com", "subject", "body")

    smtp.assert_called_once_with("smtp.example.com", 587, timeout=30.0)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("u", "p")
    server.send_message.assert_called_once()
    server.quit.assert_called_once()
