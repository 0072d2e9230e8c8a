"""Unit tests for EmailService."""

from unittest.mock import AsyncMock, patch

import pytest

from src.services.email_service import EmailService, render_otp_email


@pytest.fixture
def service():
    return EmailService()


class TestRenderOtpEmail:
    def test_contains_code_and_expiry(self):
        subject, plain, html = render_otp_email("482913", "Chat Assistant", 5)

        assert subject == "Your OTP for Chat Assistant"
        assert "482913" in plain
        assert "482913" in html
        assert "5 minutes" in plain
        assert "5 minutes" in html

    def test_app_name_is_escaped_in_html(self):
        _, _, html = render_otp_email("123456", "<b>App</b>", 5)

        assert "<b>App</b>" not in html
        assert "&lt;b&gt;App&lt;/b&gt;" in html


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_sends_multipart_message(self, service):
        with patch("aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            ok = await service.send_email(
                "user@example.com", "Subject", "<p>Hi</p>", plain_body="Hi"
            )

        assert ok is True
        message = mock_send.call_args[0][0]
        assert message["To"] == "user@example.com"
        assert message["Subject"] == "Subject"
        assert message.is_multipart()

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self, service):
        with patch("aiosmtplib.send", new_callable=AsyncMock, side_effect=OSError("refused")):
            ok = await service.send_email("user@example.com", "Subject", "<p>Hi</p>")

        assert ok is False

    @pytest.mark.asyncio
    async def test_send_otp_email_uses_template(self, service):
        with patch.object(service, "send_email", new_callable=AsyncMock, return_value=True) as mock_send:
            ok = await service.send_otp_email("user@example.com", "654321")

        assert ok is True
        to, subject, html = mock_send.call_args[0]
        assert to == "user@example.com"
        assert subject.startswith("Your OTP for")
        assert "654321" in html
        assert "654321" in mock_send.call_args.kwargs["plain_body"]
