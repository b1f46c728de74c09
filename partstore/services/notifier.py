from __future__ import annotations

import asyncio
import logging
from email.message import EmailMessage

logger = logging.getLogger(__name__)


class Notifier:
    async def send(self, recipient: str, subject: str, body: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Used when no mail transport is configured: the alert only reaches the log."""

    async def send(self, recipient: str, subject: str, body: str) -> None:
        logger.warning("[ALERT - not sent, SMTP not configured] to=%s %s: %s", recipient or "-", subject, body)


class SmtpNotifier(Notifier):
    def __init__(self, host: str, port: int, user: str, password: str, sender: str | None = None):
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.sender = sender or user

    def _send(self, recipient: str, subject: str, body: str) -> None:
        import smtplib

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=30) as s:
            s.starttls()
            if self.user and self.password:
                s.login(self.user, self.password)
            s.send_message(msg)

    async def send(self, recipient: str, subject: str, body: str) -> None:
        # smtplib blocks; keep it off the event loop.
        await asyncio.to_thread(self._send, recipient, subject, body)
        logger.info("Alert email sent to %s: %s", recipient, subject)


def get_notifier(config) -> Notifier:
    if config.smtp_user and config.smtp_pass and config.alert_email:
        return SmtpNotifier(
            host=config.smtp_host,
            port=config.smtp_port,
            user=config.smtp_user,
            password=config.smtp_pass,
            sender=config.smtp_from or None,
        )
    logger.info("SMTP credentials or ALERT_EMAIL not provided. Alerts will be logged only.")
    return LogNotifier()
