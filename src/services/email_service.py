"""Email service for delivering one-time codes over SMTP."""

from email.message import EmailMessage
from html import escape

import structlog

from src.config import get_settings

logger = structlog.get_logger(__name__)


def render_otp_email(code: str, app_name: str, ttl_minutes: int) -> tuple[str, str, str]:
    """Build (subject, plain_body, html_body) for an OTP message."""
    subject = f"Your OTP for {app_name}"
    plain = (
        f"Your one-time password for {app_name} is: {code}\n\n"
        f"This code will expire in {ttl_minutes} minutes.\n"
        f"If you didn't request this code, please ignore this email."
    )
    name = escape(app_name)
    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h1 style="color: #6D28D9;">{name}</h1>
      <h2>Your One-Time Password</h2>
      <p>Your OTP code is:</p>
      <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; text-align: center; margin: 20px 0;">
        <h1 style="color: #6D28D9; font-size: 36px; margin: 0; letter-spacing: 8px;">{escape(code)}</h1>
      </div>
      <p>This code will expire in {ttl_minutes} minutes.</p>
      <p>If you didn't request this code, please ignore this email.</p>
    </div>
    """
    return subject, plain, html


class EmailService:
    """Thin wrapper over aiosmtplib. No delivery receipts are tracked."""

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        plain_body: str | None = None,
    ) -> bool:
        """Send one HTML email.

        Returns True on success, False on failure.
        """
        settings = get_settings()

        message = EmailMessage()
        message["From"] = settings.email_from
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(plain_body or "This message requires an HTML-capable mail client.")
        message.add_alternative(html_body, subtype="html")

        try:
            import aiosmtplib

            await aiosmtplib.send(
                message,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                use_tls=settings.smtp_use_tls,
                start_tls=settings.smtp_start_tls and not settings.smtp_use_tls,
                timeout=settings.timeout_seconds,
            )
        except Exception as e:
            logger.error(
                "email_send_failed",
                to=to_email,
                subject=subject,
                error=str(e),
            )
            return False

        logger.info("email_sent", to=to_email, subject=subject)
        return True

    async def send_otp_email(self, to_email: str, code: str) -> bool:
        """Send the templated one-time password message."""
        settings = get_settings()
        subject, plain, html = render_otp_email(
            code, settings.email_app_name, settings.otp_ttl_minutes
        )
        return await self.send_email(to_email, subject, html, plain_body=plain)
