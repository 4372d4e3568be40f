"""
E-mail delivery for notifications.

Uses the SendGrid API when a key is configured and falls back to SMTP
(STARTTLS, then SSL) with the sender's password.
"""
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Dict, Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from app.core.config import settings

logger = logging.getLogger(__name__)


class Mailer:
    """Sends HTML notification e-mails."""

    def __init__(self, sendgrid_api_key: str = None, email_from: str = None, email_password: str = None,
                 smtp_host: str = None, smtp_port: int = None):
        self.sendgrid_api_key = sendgrid_api_key if sendgrid_api_key is not None else settings.sendgrid_api_key
        self.email_from = email_from if email_from is not None else settings.email_from
        self.email_password = email_password if email_password is not None else settings.email_password
        self.smtp_host = smtp_host or settings.smtp_host
        self.smtp_port = smtp_port or settings.smtp_port

    @property
    def use_sendgrid(self) -> bool:
        return bool(self.sendgrid_api_key and self.email_from)

    @property
    def use_smtp(self) -> bool:
        return bool(self.email_from and self.email_password)

    @property
    def is_configured(self) -> bool:
        return self.use_sendgrid or self.use_smtp

    def render(self, notification_type: str, data: Dict[str, Any]) -> str:
        """Simple HTML body listing the notification fields."""
        title = escape(data.get("title") or notification_type.replace("_", " ").title())
        message = escape(str(data.get("message", "")))
        rows = "".join(
            f"<tr><td style='padding:4px 12px 4px 0;color:#555'>{escape(str(k))}</td>"
            f"<td style='padding:4px 0'>{escape(str(v))}</td></tr>"
            for k, v in data.items()
            if k not in ("title", "message") and v is not None and not isinstance(v, (dict, list))
        )
        return (
            f"<html><body style='font-family:Arial,sans-serif'>"
            f"<h2>{title}</h2><p>{message}</p>"
            f"<table>{rows}</table>"
            f"<p style='color:#999;font-size:12px'>{escape(settings.app_name)}</p>"
            f"</body></html>"
        )

    def send(self, to_email: str, subject: str, html_content: str) -> bool:
        """Send an e-mail; returns False when every method fails."""
        if not self.is_configured:
            logger.debug("Email not configured - skipping email")
            return False

        if self.use_sendgrid:
            try:
                message = Mail(
                    from_email=self.email_from,
                    to_emails=to_email,
                    subject=subject,
                    html_content=html_content
                )
                response = SendGridAPIClient(self.sendgrid_api_key).send(message)
                logger.info(f"Email sent to {to_email} (SendGrid status: {response.status_code})")
                return True
            except Exception as e:
                logger.warning(f"SendGrid failed: {e}")
                if not self.use_smtp:
                    return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.email_from
        msg["To"] = to_email
        msg.attach(MIMEText(html_content, "html"))

        methods = [
            ("SMTP with STARTTLS", self.smtp_port, False),
            ("SMTP_SSL", 465, True),
        ]
        for method_name, port, use_ssl in methods:
            try:
                if use_ssl:
                    with smtplib.SMTP_SSL(self.smtp_host, port, timeout=10) as server:
                        server.login(self.email_from, self.email_password)
                        server.send_message(msg)
                else:
                    with smtplib.SMTP(self.smtp_host, port, timeout=10) as server:
                        server.starttls()
                        server.login(self.email_from, self.email_password)
                        server.send_message(msg)
                logger.info(f"Email sent to {to_email} via {method_name}")
                return True
            except Exception as e:
                logger.warning(f"{method_name} failed: {e}")

        logger.error(f"All email methods failed for {to_email}")
        return False


# Global mailer instance
mailer = Mailer()
