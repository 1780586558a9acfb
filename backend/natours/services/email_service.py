"""
Natours Backend: Transactional Email Service
=============================================

What:  Sends the welcome email and the password-reset email.
Why:   Password reset is only possible through a link delivered by email.
How:   Builds an EmailMessage and hands it to smtplib in a worker thread
       (smtplib is blocking). Delivery is retried with exponential backoff
       and jitter via tenacity.
Who:   AuthService.

Development mode:
    With no SMTP_HOST configured in development, messages are written to
    the log instead of being sent, so the reset URL can be copied from the
    console.

Failure policy:
    send_welcome         best-effort; failures are logged, never raised
    send_password_reset  raises EmailDeliveryError so the caller can roll
                         back the reset token
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from natours.config import settings
from natours.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailService:
    """SMTP sender with retry."""

    def _first_name(self, name: str) -> str:
        return name.split(" ")[0] if name else "there"

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = settings.email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_username:
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(message)

    @retry(
        retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    async def _deliver_with_retry(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._send_sync, message)

    async def send(self, to: str, subject: str, body: str) -> None:
        """
        Deliver one message.

        Raises:
            EmailDeliveryError: all attempts failed.
        """
        message = self.build_message(to, subject, body)
        if not settings.smtp_host:
            if settings.is_development:
                logger.info("Email (not sent, no SMTP_HOST) to=%s subject=%r\n%s", to, subject, body)
                return
            raise EmailDeliveryError(context={"reason": "smtp_host not configured"})

        try:
            await self._deliver_with_retry(message)
        except (RetryError, smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery to %s failed after retries: %s", to, str(e))
            raise EmailDeliveryError(context={"to": to, "error": str(e)})
        logger.info("Email sent to %s: %s", to, subject)

    async def send_welcome(self, name: str, email: str, url: str) -> None:
        """Welcome email after signup. Best-effort."""
        body = (
            f"Hi {self._first_name(name)},\n\n"
            "Welcome to Natours, we're glad to have you!\n"
            f"Upload a profile photo and start exploring: {url}\n"
        )
        try:
            await self.send(email, "Welcome to the Natours Family!", body)
        except EmailDeliveryError as e:
            logger.warning("Welcome email to %s not delivered: %s", email, e.message)

    async def send_password_reset(self, name: str, email: str, url: str) -> None:
        body = (
            f"Hi {self._first_name(name)},\n\n"
            "Forgot your password? Submit a PATCH request with your new password "
            f"and passwordConfirm to: {url}\n"
            f"The link is valid for {settings.password_reset_expires_minutes} minutes.\n"
            "If you didn't forget your password, please ignore this email.\n"
        )
        await self.send(
            email,
            f"Your password reset token (valid for only {settings.password_reset_expires_minutes} minutes)",
            body,
        )


email_service = EmailService()
