"""
Outbound email.

Two providers are supported: plain SMTP (via aiosmtplib) and the Resend
HTTP API (via aiohttp). EmailService wraps whichever provider is
configured and renders the account and announcement templates.
"""

import asyncio
import html
import logging
import re
from email.message import EmailMessage
from typing import Optional, Protocol
from urllib.parse import quote

import aiohttp
import aiosmtplib

from ..config import config
from ..site_settings import SiteSettingsCache, settings_cache

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
SEND_TIMEOUT_SECONDS = 30

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class EmailError(Exception):
    """Raised when an email cannot be sent."""


class EmailProvider(Protocol):
    name: str

    def is_configured(self) -> bool:
        ...

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        ...


def _from_address(from_email: str, from_name: str) -> str:
    return f"{from_name} <{from_email}>" if from_name else from_email


class SMTPEmailProvider:
    """SMTP delivery. Tries implicit TLS first, then STARTTLS."""

    name = "smtp"

    def __init__(self, host: str, port: str, username: str, password: str, from_email: str, from_name: str = ""):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name

    def is_configured(self) -> bool:
        return all([self.host, self.port, self.username, self.password, self.from_email])

    def _build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = _from_address(self.from_email, self.from_name)
        message["To"] = to
        message["Subject"] = subject
        message.set_content(html_body, subtype="html")
        return message

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        if not self.is_configured():
            raise EmailError("SMTP provider is not configured")

        message = self._build_message(to, subject, html_body)
        params = {
            "hostname": self.host,
            "port": int(self.port),
            "username": self.username,
            "password": self.password,
            "timeout": SEND_TIMEOUT_SECONDS,
        }

        try:
            await aiosmtplib.send(message, use_tls=True, **params)
        except (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected, OSError) as e:
            logger.debug(f"Implicit TLS to {self.host}:{self.port} failed ({e}), retrying with STARTTLS")
            try:
                await aiosmtplib.send(message, start_tls=True, **params)
            except aiosmtplib.SMTPException as e:
                raise EmailError(f"SMTP send failed: {e}")
        except aiosmtplib.SMTPException as e:
            raise EmailError(f"SMTP send failed: {e}")


class ResendEmailProvider:
    """Delivery through the Resend HTTPS API."""

    name = "resend"

    def __init__(self, api_key: str, from_email: str, from_name: str = "", api_url: str = RESEND_API_URL):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.api_url = api_url

    def is_configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        if not self.is_configured():
            raise EmailError("Resend provider is not configured")

        payload = {
            "from": _from_address(self.from_email, self.from_name),
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.api_url,
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=SEND_TIMEOUT_SECONDS),
            ) as response:
                if response.status == 200:
                    return
                error_text = await response.text()
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                if isinstance(body, dict) and (body.get("error") or {}).get("message"):
                    raise EmailError(f"Resend API error: {body['error']['message']}")
                raise EmailError(f"Resend API error: status {response.status}, body: {error_text}")


def new_email_provider(settings=config) -> Optional[EmailProvider]:
    """
    Build the provider selected by EMAIL_PROVIDER.

    Returns None when EMAIL_ENABLED is false or 0.

    Raises:
        ValueError: For an unsupported provider name
    """
    if not settings.email_enabled:
        return None

    provider = settings.email_provider or "smtp"
    if provider == "smtp":
        return SMTPEmailProvider(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_username,
            settings.smtp_password,
            settings.smtp_from_email,
            settings.smtp_from_name,
        )
    if provider == "resend":
        return ResendEmailProvider(settings.resend_api_key, settings.resend_from_email, settings.resend_from_name)

    raise ValueError(f"unsupported email provider: {provider}")


_STYLE = """
        body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
        .container { max-width: 600px; margin: 0 auto; padding: 20px; }
        .header { background-color: #0e6c55; color: white; padding: 20px; text-align: center; }
        .content { padding: 20px; background-color: #f8fafc; }
        .button { display: inline-block; padding: 12px 24px; background-color: #0e6c55; color: white; text-decoration: none; border-radius: 4px; margin: 20px 0; }
        .footer { text-align: center; padding: 20px; font-size: 12px; color: #666; }
"""

_PAGE = """<!DOCTYPE html>
<html>
<head>
    <style>{style}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{heading}</h1>
        </div>
        <div class="content">
{content}
        </div>
        <div class="footer">
{footer}
        </div>
    </div>
</body>
</html>
"""


def _render(heading: str, content: str, footer: str) -> str:
    return _PAGE.format(style=_STYLE, heading=heading, content=content, footer=footer)


class EmailService:
    """Sends templated mail through the configured provider."""

    def __init__(
        self,
        provider: Optional[EmailProvider] = None,
        cache: Optional[SiteSettingsCache] = None,
        frontend_url: Optional[str] = None,
    ):
        self.provider = provider
        self.cache = cache or settings_cache
        self.frontend_url = (frontend_url or config.frontend_url).rstrip("/")

    def is_configured(self) -> bool:
        return self.provider is not None and self.provider.is_configured()

    @staticmethod
    def is_valid_email(address: str) -> bool:
        return bool(EMAIL_REGEX.match(address or ""))

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        """
        Send a single HTML email.

        Raises:
            EmailError: If the service is unconfigured, the address is
                invalid, or the provider fails or times out
        """
        if not self.is_configured():
            raise EmailError("email service is not configured")
        if not self.is_valid_email(to):
            raise EmailError(f"invalid email address: {to}")

        try:
            await asyncio.wait_for(self.provider.send_email(to, subject, html_body), SEND_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            raise EmailError(f"timed out sending email via {self.provider.name}")

        logger.info(f"Email sent via {self.provider.name}: {subject!r}")

    async def send_password_reset_email(self, to: str, username: str, token: str) -> None:
        raw_name = await self.cache.site_name()
        site_name = html.escape(raw_name)
        link = f"{self.frontend_url}/reset-password?token={quote(token)}"
        content = f"""            <p>Hello {html.escape(username)},</p>
            <p>We received a request to reset your password for your {site_name} account.</p>
            <p>Click the button below to reset your password:</p>
            <p style="text-align: center;"><a href="{link}" class="button">Reset Password</a></p>
            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #0e6c55;">{link}</p>
            <p><strong>This link will expire in 1 hour.</strong></p>
            <p>If you didn't request a password reset, you can safely ignore this email.</p>"""
        footer = f"            <p>&copy; {site_name} - This is an automated message, please do not reply.</p>"
        body = _render("Password Reset Request", content, footer)
        await self.send_email(to, f"Password Reset Request - {raw_name}", body)

    async def send_password_setup_email(self, to: str, username: str, token: str) -> None:
        raw_name = await self.cache.site_name()
        site_name = html.escape(raw_name)
        name = html.escape(username)
        link = f"{self.frontend_url}/setup-password?token={quote(token)}"
        content = f"""            <p><strong>Hello {name},</strong></p>
            <p>Your username for signing in is: <strong>{name}</strong></p>
            <p>Your account has been created for {site_name}. We're excited to have you join our team!</p>
            <p>To get started, please click the button below to set your password:</p>
            <p style="text-align: center;"><a href="{link}" class="button">Set Your Password</a></p>
            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #0e6c55;">{link}</p>
            <p><strong>This link will expire in 7 days.</strong></p>
            <p>If you have any questions or didn't expect this invitation, please contact your administrator.</p>"""
        footer = f"            <p>&copy; {site_name} - This is an automated message, please do not reply.</p>"
        body = _render(f"Welcome to {site_name}!", content, footer)
        await self.send_email(to, f"Welcome to {raw_name} - Set Your Password", body)

    async def send_announcement_email(self, to: str, title: str, content: str) -> None:
        site_name = await self.cache.site_name()
        body_html = html.escape(content).replace("\n", "<br>")
        footer = (
            f"            <p>&copy; {html.escape(site_name)} - You're receiving this because you opted in "
            "to email notifications.</p>\n"
            "            <p>You can manage your email preferences in your account settings.</p>"
        )
        body = _render(html.escape(title), f"            {body_html}", footer)
        await self.send_email(to, f"Announcement: {title} - {site_name}", body)


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """FastAPI dependency returning the process-wide email service."""
    global _email_service
    if _email_service is None:
        provider = new_email_provider()
        if provider is None:
            logger.info("Email disabled via EMAIL_ENABLED")
        elif not provider.is_configured():
            logger.warning(f"Email provider {provider.name} is not fully configured; emails will not be sent")
        _email_service = EmailService(provider)
    return _email_service
