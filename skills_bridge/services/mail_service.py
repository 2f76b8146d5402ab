"""
Outgoing mail

Sends the email verification and password reset links over SMTP. A failed
delivery is logged and reported as False; account routes still answer
normally when mail cannot be sent.
"""

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from fastapi import Depends
from starlette.concurrency import run_in_threadpool

from skills_bridge.config import Settings, get_app_settings

logger = logging.getLogger(__name__)

SENDER_NAME = "Global Skills Bridge"

RESET_SUBJECT = "Reset your Global Skills Bridge password"
VERIFY_SUBJECT = "Verify your Global Skills Bridge email address"

RESET_TEXT = """Hello {name},

We received a request to reset the password of your Global Skills Bridge account.
Open the link below to choose a new password. It expires in 10 minutes.

{url}

If you did not ask for a reset, you can ignore this email.
"""

VERIFY_TEXT = """Welcome to Global Skills Bridge, {name}!

Please confirm your email address by opening the link below:

{url}
"""


class MailService:
    """SMTP sender for account emails"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def configured(self) -> bool:
        return bool(self._settings.smtp_host)

    def _new_connection(self) -> smtplib.SMTP:
        return smtplib.SMTP(host=self._settings.smtp_host, port=self._settings.smtp_port, timeout=10)

    def _deliver(self, message: EmailMessage) -> None:
        """Open a session, send one message and quit (blocking)"""
        with self._new_connection() as conn:
            if self._settings.smtp_use_tls:
                conn.starttls()
            if self._settings.smtp_user:
                conn.login(self._settings.smtp_user, self._settings.smtp_pass)
            conn.send_message(message)

    def build_message(self, to: str, subject: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((SENDER_NAME, self._settings.from_email))
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        return message

    async def send(self, to: str, subject: str, text: str) -> bool:
        """
        Send a plain-text email

        Returns:
            True when the SMTP server accepted the message
        """
        if not self.configured:
            logger.warning(f"SMTP_HOST is not configured, not sending '{subject}' to {to}")
            return False

        message = self.build_message(to, subject, text)
        try:
            await run_in_threadpool(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' to {to}: {e}")
            return False

        logger.info(f"Sent '{subject}' to {to}")
        return True

    def _link(self, path: str, token: str) -> str:
        return f"{self._settings.frontend_url.rstrip('/')}/{path}/{token}"

    async def send_password_reset_email(self, email: str, reset_token: str, name: str) -> bool:
        url = self._link("reset-password", reset_token)
        return await self.send(email, RESET_SUBJECT, RESET_TEXT.format(name=name, url=url))

    async def send_email_verification_email(self, email: str, verification_token: str, name: str) -> bool:
        url = self._link("verify-email", verification_token)
        return await self.send(email, VERIFY_SUBJECT, VERIFY_TEXT.format(name=name, url=url))


def get_mail_service(settings: Settings = Depends(get_app_settings)) -> MailService:
    """Get the mail service"""
    return MailService(settings)
