"""
Tests for the email service, email providers and GroupMe helpers.
"""

from types import SimpleNamespace

import pytest

from volunteer_media.notifications.email import (
    EmailError,
    EmailService,
    ResendEmailProvider,
    SMTPEmailProvider,
    new_email_provider,
)
from volunteer_media.notifications.groupme import (
    GroupMeError,
    GroupMeService,
    format_announcement,
    truncate_message,
)

pytestmark = pytest.mark.asyncio


class RecordingProvider:
    name = "recording"

    def __init__(self):
        self.messages = []

    def is_configured(self) -> bool:
        return True

    async def send_email(self, to, subject, html_body):
        self.messages.append((to, subject, html_body))


class StaticSettings:
    def __init__(self, site_name="Paws <Portal>"):
        self.name = site_name

    async def site_name(self):
        return self.name


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def service(provider):
    return EmailService(provider=provider, cache=StaticSettings(), frontend_url="https://portal.example.org/")


class TestEmailService:
    async def test_reset_email(self, service, provider):
        await service.send_password_reset_email("walker@shelter.org", "walker", "tok en")
        to, subject, body = provider.messages[0]
        assert to == "walker@shelter.org"
        assert subject == "Password Reset Request - Paws <Portal>"
        assert "https://portal.example.org/reset-password?token=tok%20en" in body
        assert "Paws &lt;Portal&gt;" in body

    async def test_setup_email(self, service, provider):
        await service.send_password_setup_email("new@shelter.org", "newbie", "abc")
        _, subject, body = provider.messages[0]
        assert subject == "Welcome to Paws <Portal> - Set Your Password"
        assert "/setup-password?token=abc" in body
        assert "7 days" in body

    async def test_announcement_escapes_content(self, service, provider):
        await service.send_announcement_email("fan@shelter.org", "Open <house>", "Line one\n<script>")
        _, subject, body = provider.messages[0]
        assert subject == "Announcement: Open <house> - Paws <Portal>"
        assert "Line one<br>&lt;script&gt;" in body

    async def test_invalid_address(self, service):
        with pytest.raises(EmailError, match="invalid email address"):
            await service.send_email("not-an-address", "Hi", "<p>Hi</p>")

    async def test_unconfigured(self):
        service = EmailService(provider=None, cache=StaticSettings())
        assert service.is_configured() is False
        with pytest.raises(EmailError, match="not configured"):
            await service.send_email("walker@shelter.org", "Hi", "<p>Hi</p>")


class TestProviders:
    def _settings(self, **overrides):
        values = dict(
            email_enabled=True, email_provider="smtp",
            smtp_host="smtp.example.org", smtp_port="587", smtp_username="mailer", smtp_password="secret",
            smtp_from_email="noreply@example.org", smtp_from_name="Paws Portal",
            resend_api_key="re_123", resend_from_email="noreply@example.org", resend_from_name="",
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_disabled(self):
        assert new_email_provider(self._settings(email_enabled=False)) is None

    def test_smtp(self):
        provider = new_email_provider(self._settings())
        assert isinstance(provider, SMTPEmailProvider)
        assert provider.is_configured()

    def test_smtp_missing_host(self):
        assert not new_email_provider(self._settings(smtp_host="")).is_configured()

    def test_resend(self):
        provider = new_email_provider(self._settings(email_provider="resend"))
        assert isinstance(provider, ResendEmailProvider)
        assert provider.is_configured()

    def test_unsupported(self):
        with pytest.raises(ValueError, match="unsupported email provider"):
            new_email_provider(self._settings(email_provider="carrier-pigeon"))


class TestGroupMe:
    def test_truncate(self):
        assert truncate_message("short") == "short"
        assert truncate_message("x" * 1200) == "x" * 997 + "..."
        assert truncate_message("abcdef", max_length=2) == "ab"

    def test_format_announcement(self):
        assert format_announcement("Walk", "Meet at 6") == "📢 Walk\n\nMeet at 6"

    async def test_requires_bot_and_text(self):
        service = GroupMeService(api_url="http://127.0.0.1:9/unused")
        with pytest.raises(GroupMeError, match="bot ID is required"):
            await service.send_message("", "hello")
        with pytest.raises(GroupMeError, match="title is required"):
            await service.send_announcement("bot", "", "content")
