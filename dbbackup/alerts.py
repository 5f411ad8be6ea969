"""Failure alert emails."""

import asyncio
import logging
import socket
from datetime import datetime
from email.mime.text import MIMEText

import aiosmtplib


logger = logging.getLogger(__name__)


class EmailNotifier:
    """
    Sends failure alerts to the configured operator list.

    Sending problems are logged and reported through the return value only;
    there is no further channel to escalate them to.
    """

    def __init__(self, settings):
        """
        Args:
            settings: BackupSettings with SMTP server, sender and recipients
        """
        self.settings = settings

    def notify(self, subject: str, body: str) -> bool:
        """
        Send an alert.

        Args:
            subject: Email subject
            body: Plain text body

        Returns:
            True if the message was handed to the SMTP server, False otherwise
        """
        if not self.settings.smtp_server:
            logger.warning(f"SMTP not configured, alert not sent: {subject}")
            return False

        recipients = list(self.settings.mail_recipients)
        if not recipients:
            logger.warning(f"No alert recipients configured, alert not sent: {subject}")
            return False

        msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = self.settings.mail_sender
        msg["To"] = ", ".join(recipients)

        try:
            asyncio.run(aiosmtplib.send(
                msg,
                sender=self.settings.mail_sender,
                recipients=recipients,
                hostname=self.settings.smtp_server,
                port=self.settings.smtp_port,
                start_tls=self.settings.smtp_use_tls,
            ))
        except Exception as e:
            logger.error(f"Failed to send alert '{subject}' to {', '.join(recipients)}: {e}")
            return False

        logger.info(f"Alert sent to {', '.join(recipients)}: {subject}")
        return True


def generate_failure_content(settings, tier_label: str, failure_class: str, details: str,
                             moment: datetime = None,
                             headline: str = "Database Backup Failed") -> tuple[str, str]:
    """Generate email subject and body for a failed run."""
    moment = moment or datetime.now()
    timestamp = moment.strftime("%Y-%m-%d %H:%M:%S")

    subject = f"{tier_label} {headline} - {failure_class}"

    body = f"""Database Backup Alert

Tier: {tier_label}
Failure: {failure_class}
Database: {settings.db_name}
Server: {settings.db_host}
Host: {socket.gethostname()}
Time: {timestamp}

Details:
{details}
"""

    return subject, body
