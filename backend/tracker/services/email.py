from __future__ import annotations

import asyncio
import html
import logging
import re
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from tracker.core.config import Settings
from tracker.core.exceptions import TransientChannelFailure

logger = logging.getLogger(__name__)

ACCENT_COLOR = "#0d8bff"


class MailTransport(Protocol):
    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        """Deliver one message. Raises :class:`TransientChannelFailure` on failure."""


@dataclass
class SMTPConfig:
    host: str
    port: int
    secure: bool
    reject_unauthorized: bool
    username: str | None
    password: str | None
    from_address: str


def _build_html_layout(title: str, body: str, app_url: str) -> str:
    return f"""\
<html>
  <body style="font-family:'Inter','Segoe UI',Arial,sans-serif;color:#0f172a;background-color:#f3f4f6;padding:24px;">
    <div style="max-width:520px;margin:0 auto;background-color:#ffffff;padding:28px;border-radius:16px;border:1px solid #e2e8f0;">
      <p style="margin:0 0 24px 0;font-size:18px;font-weight:700;">
        <a href="{app_url}" style="color:{ACCENT_COLOR};text-decoration:none;">Tracker</a>
      </p>
      <h2 style="margin-top:0;font-size:22px;color:#0f172a;">{title}</h2>
      <div style="font-size:15px;line-height:1.5;color:#334155;">{body}</div>
      <p style="font-size:12px;color:#94a3b8;margin-top:32px;">
        This message was sent by Tracker. If you weren't expecting it, you can ignore this email.
      </p>
    </div>
  </body>
</html>
"""


def _strip_html(html_body: str) -> str:
    return re.sub(r"<[^>]+>", "", html_body)


def render_notification_email(title: str, body: str, link: str | None, *, app_url: str) -> tuple[str, str]:
    """Return ``(html, text)`` for a notification combining body and link."""
    parts = [f"<p>{html.escape(body)}</p>"]
    if link:
        safe_link = html.escape(link, quote=True)
        parts.append(
            f'<p style="margin:24px 0;"><a href="{safe_link}" style="background-color:{ACCENT_COLOR};'
            'color:#ffffff;padding:12px 18px;border-radius:8px;text-decoration:none;font-weight:600;'
            'display:inline-block;">Click here to view the update.</a></p>'
        )
    html_body = _build_html_layout(html.escape(title), "\n".join(parts), app_url)
    text_body = body if not link else f"{body}\nView the update here: {link}"
    return html_body, text_body


def _smtp_context(reject_unauthorized: bool) -> ssl.SSLContext:
    if reject_unauthorized:
        return ssl.create_default_context()
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _send_via_client(client: smtplib.SMTP, config: SMTPConfig, message: EmailMessage) -> None:
    if config.username and config.password:
        client.login(config.username, config.password)
    client.send_message(message)


def _deliver(config: SMTPConfig, message: EmailMessage) -> None:
    context = _smtp_context(config.reject_unauthorized)
    if config.secure:
        with smtplib.SMTP_SSL(config.host, config.port, context=context) as client:
            _send_via_client(client, config, message)
    else:
        with smtplib.SMTP(config.host, config.port) as client:
            client.ehlo()
            try:
                client.starttls(context=context)
                client.ehlo()
            except smtplib.SMTPException:
                logger.debug("STARTTLS not available for SMTP host %s:%s", config.host, config.port)
            _send_via_client(client, config, message)


class SmtpMailTransport:
    """Blocking smtplib delivery pushed onto a worker thread."""

    def __init__(self, config: SMTPConfig) -> None:
        self.config = config

    def build_message(self, to: str, subject: str, html_body: str, text_body: str | None = None) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.config.from_address
        message["To"] = to
        message.set_content(text_body or _strip_html(html_body))
        message.add_alternative(html_body, subtype="html")
        return message

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        message = self.build_message(to, subject, html_body, text_body)
        try:
            await asyncio.to_thread(_deliver, self.config, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransientChannelFailure(f"Failed to send email: {exc}") from exc


def build_mail_transport(settings: Settings) -> SmtpMailTransport | None:
    """SMTP transport from configuration, or None when email is not configured."""
    if not settings.SMTP_HOST or not settings.SMTP_FROM_ADDRESS:
        logger.info("SMTP not configured; email notifications disabled")
        return None
    port = settings.SMTP_PORT or (465 if settings.SMTP_SECURE else 587)
    return SmtpMailTransport(
        SMTPConfig(
            host=settings.SMTP_HOST,
            port=port,
            secure=settings.SMTP_SECURE,
            reject_unauthorized=settings.SMTP_REJECT_UNAUTHORIZED,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            from_address=settings.SMTP_FROM_ADDRESS,
        )
    )
