"""Anomaly alerts sent to the account owner by email."""
from email.mime.text import MIMEText
import smtplib
from typing import Protocol

from sqlalchemy.orm import sessionmaker

from auth_service.config import Settings
from auth_service.errors import NotificationError
from auth_service.logging import get_logger
from auth_service.models.user import User

logger = get_logger(__name__)


class Notifier(Protocol):
    """Channel told about sign-in attempts from an unexpected address."""

    def notify(self, identity: str, offending_address: str) -> None:
        ...


def build_warning_message(offending_address: str) -> str:
    """Plain-text body for the address-change warning."""
    return (
        "Hello, an attempt was made to sign in to your account from another "
        f"IP address - {offending_address}. If it was not you, contact support."
    )


class EmailNotifier:
    """Send address-change warnings over SMTP.

    Uses ``smtp_host``, ``smtp_port``, ``smtp_user``, ``smtp_password`` and
    ``smtp_from_email`` from settings. Without ``smtp_host`` alerts are only
    logged.
    """

    subject = "Sign-in attempt from a new address"

    def __init__(self, settings: Settings, session_factory: sessionmaker) -> None:
        self.settings = settings
        self._session_factory = session_factory

    def _lookup_email(self, identity: str) -> str | None:
        db = self._session_factory()
        try:
            user = db.query(User).filter(User.id == identity).first()
            return user.email if user else None
        finally:
            db.close()

    def notify(self, identity: str, offending_address: str) -> None:
        if not self.settings.smtp_host:
            logger.info("smtp_not_configured", identity=identity, address=offending_address)
            return

        to_email = self._lookup_email(identity)
        if not to_email:
            logger.warning("alert_recipient_missing", identity=identity)
            return

        msg = MIMEText(build_warning_message(offending_address), "plain")
        msg["Subject"] = self.subject
        msg["From"] = self.settings.smtp_from_email
        msg["To"] = to_email

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as server:
                server.starttls()
                if self.settings.smtp_user and self.settings.smtp_password:
                    server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"failed to send alert email: {exc}") from exc

        logger.info("alert_email_sent", identity=identity, address=offending_address)
