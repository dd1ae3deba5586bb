from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from loguru import logger

from ..database import settings
from ..workflow.errors import NotificationError


@dataclass
class EmailNotification:
    to: str
    subject: str
    body: str
    reply_to: Optional[str] = None


class NotificationService:
    """Best-effort transactional email over SMTP.

    Without ``SMTP_HOST`` configured every message is logged instead of sent.
    Delivery failures raise ``NotificationError``; callers decide whether that
    matters (the workflow never lets it undo a committed change).
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None,
    ) -> None:
        self.host = host if host is not None else settings.smtp_host
        self.port = port if port is not None else settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.sender = sender or settings.mail_from or (
            f'"{settings.organization_name}" <{self.user}>' if self.user else "no-reply@localhost"
        )
        if not self.host:
            logger.warning("SMTP host missing; email notifications will be mocked.")

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def _build_message(self, message: EmailNotification) -> EmailMessage:
        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = self.sender
        email["To"] = message.to
        if message.reply_to:
            email["Reply-To"] = message.reply_to
        email.set_content(message.body)
        return email

    def _deliver(self, email: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=settings.smtp_timeout_s) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.user and self.password:
                smtp.login(self.user, self.password)
            smtp.send_message(email)

    async def send_email(self, message: EmailNotification) -> None:
        if not message.to:
            raise NotificationError("Email notification has no recipient")
        if not self.configured:
            logger.info("Mock email: {} -> {}", message.subject, message.to)
            return
        email = self._build_message(message)
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._deliver, email)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Email delivery to {message.to} failed: {exc}") from exc
        logger.info("Email sent to {}", message.to)


notification_service = NotificationService()


async def get_notifier() -> NotificationService:
    return notification_service
