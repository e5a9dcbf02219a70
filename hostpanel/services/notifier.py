import json
import smtplib
import threading
import uuid
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict, Optional, Protocol, Set

import structlog

from hostpanel.models.notification import Notification, NotificationKind

logger = structlog.get_logger(__name__)


class BroadcastSink(Protocol):
    """Push channel to the observers connected at emission time."""

    def publish(self, event: Dict[str, Any]) -> None:
        ...


class EmailSender:
    """Minimal SMTP delivery for error alerts (STARTTLS, or SSL on port 465)."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        from_address: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.from_address = from_address or user or "server-panel@localhost"
        self.user = user
        self.password = password
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.port != 465:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(message)
        finally:
            server.quit()


class Notifier:
    """
    Turns internal events into outward notifications.

    Every notification goes to the broadcast sink; error notifications are
    also mailed when an alert address and an SMTP sender are configured.
    """

    def __init__(
        self,
        sink: BroadcastSink,
        email_sender: Optional[EmailSender] = None,
        alert_email: Optional[str] = None,
    ):
        self.sink = sink
        self.email_sender = email_sender
        self.alert_email = alert_email
        self._breached: Set[str] = set()
        self._lock = threading.Lock()

    def emit(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None) -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            kind=NotificationKind(kind),
            message=message,
            details=details or {},
            timestamp=datetime.now(timezone.utc),
        )

        self.broadcast("notification", notification.model_dump(mode="json"))

        if notification.kind is NotificationKind.ERROR:
            self._send_email(notification)

        logger.info(
            "notification_sent",
            notification_id=notification.id,
            kind=notification.kind.value,
            message=message,
        )
        return notification

    def broadcast(self, event_type: str, data: Any) -> None:
        try:
            self.sink.publish({"type": event_type, "data": data})
        except Exception as exc:  # observers are best-effort
            logger.warning("broadcast_failed", event_type=event_type, error=str(exc))

    def alert(
        self,
        key: str,
        breached: bool,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """
        Emit an error notification once per threshold crossing.

        The first breached observation for ``key`` is emitted; later breached
        observations are suppressed until an observation below the threshold
        re-arms the key.
        """
        with self._lock:
            if not breached:
                self._breached.discard(key)
                return None
            if key in self._breached:
                return None
            self._breached.add(key)

        return self.emit(NotificationKind.ERROR.value, message, details)

    def _send_email(self, notification: Notification) -> None:
        if not (self.email_sender and self.alert_email):
            return

        body = "\n".join(
            [
                "Server Alert",
                "",
                f"Type: {notification.kind.value}",
                f"Message: {notification.message}",
                f"Time: {notification.timestamp.isoformat()}",
                f"Details: {json.dumps(notification.details, indent=2, default=str)}",
            ]
        )
        try:
            self.email_sender.send(self.alert_email, f"Server Alert: {notification.message}", body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("alert_email_failed", notification_id=notification.id, error=str(exc))
