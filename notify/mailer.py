"""
notify/mailer.py -- Outbound transactional email (confirmation and password reset).

Delivery is fire-and-forget from the caller's point of view: both send_*
methods return True/False and never raise. A failed send is logged; the
verification token it carried stays valid and the user can request a new one.

Dev mode: when SMTP_HOST is empty the message is logged instead of sent, so
local development and tests need no mail server. Addresses are redacted in
logs; token values are never logged.

Every SMTP call is bounded by smtp_timeout_seconds.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from html import escape
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("taskboard.notify")

def _lifetime_notice(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"This code expires in {minutes} minute{'' if minutes == 1 else 's'}."
    return f"This code expires in {seconds} seconds."


def _redact(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    """SMTP sender for account emails.

    Usage:
        mailer = Mailer.from_settings(get_settings())
        mailer.send_confirmation("ann@example.com", "Ann", code)
    """

    def __init__(
        self,
        *,
        host: str = "",
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
        mail_from: str = "TaskBoard <admin@taskboard.local>",
        frontend_url: str = "http://localhost:5173",
        token_ttl_seconds: int = 600,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.mail_from = mail_from
        self.frontend_url = frontend_url.rstrip("/")
        self.lifetime_notice = _lifetime_notice(token_ttl_seconds)

    @classmethod
    def from_settings(cls, settings: Settings) -> Mailer:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
            mail_from=settings.mail_from,
            frontend_url=settings.frontend_url,
            token_ttl_seconds=settings.verification_token_ttl_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    # ------------------------------------------------------------------
    # Account emails
    # ------------------------------------------------------------------

    def send_confirmation(self, email: str, name: str, token: str) -> bool:
        link = f"{self.frontend_url}/auth/confirm-account"
        text_body = (
            f"Hi {name}, you have created your TaskBoard account. "
            f"Confirm it at {link} and enter the code: {token}\n{self.lifetime_notice}"
        )
        html_body = (
            f"<p>Hi {escape(name)}, you have created your TaskBoard account, "
            "you only need to confirm it.</p>"
            "<p>Visit the following link:</p>"
            f'<a href="{link}">Confirm account</a>'
            f"<p>And enter the code: <b>{token}</b></p>"
            f"<p>{self.lifetime_notice}</p>"
        )
        return self._send(email, "TaskBoard - Confirm your account", text_body, html_body)

    def send_password_reset(self, email: str, name: str, token: str) -> bool:
        link = f"{self.frontend_url}/auth/new-password"
        text_body = (
            f"Hi {name}, you have requested to reset your password. "
            f"Visit {link} and enter the code: {token}\n{self.lifetime_notice}"
        )
        html_body = (
            f"<p>Hi {escape(name)}, you have requested to reset your password.</p>"
            "<p>Visit the following link:</p>"
            f'<a href="{link}">Reset password</a>'
            f"<p>And enter the code: <b>{token}</b></p>"
            f"<p>{self.lifetime_notice}</p>"
        )
        return self._send(email, "TaskBoard - Reset your password", text_body, html_body)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _build(self, to_email: str, subject: str, text_body: str, html_body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.mail_from
        msg["To"] = to_email
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")
        return msg

    def _send(self, to_email: str, subject: str, text_body: str, html_body: str) -> bool:
        if not self.is_configured:
            logger.info("Email (dev mode, not sent) to=%s subject=%r", _redact(to_email), subject)
            return True

        msg = self._build(to_email, subject, text_body, html_body)
        context = ssl.create_default_context()
        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._deliver(server, msg)
            else:
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                    self._deliver(server, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email to %s failed: %s", _redact(to_email), exc)
            return False

        logger.info("Email sent to=%s subject=%r", _redact(to_email), subject)
        return True

    def _deliver(self, server: smtplib.SMTP, msg: EmailMessage) -> None:
        if self.user and self.password:
            server.login(self.user, self.password)
        server.send_message(msg)
