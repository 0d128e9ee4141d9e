import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_subtype: str = "pdf"


class EmailChannel(ABC):

    @abstractmethod
    def send(self, to: str, subject: str, body: str, attachment: Optional[Attachment] = None) -> None:
        """Deliver one message; raise on failure."""
        ...


class SmtpEmailChannel(EmailChannel):

    def __init__(self, host, port, user, password, sender, secure=False, timeout=10.0):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.secure = secure
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SmtpEmailChannel":
        return cls(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            user=settings.EMAIL_USER,
            password=settings.EMAIL_PASSWORD,
            sender=settings.EMAIL_FROM,
            secure=settings.EMAIL_SECURE,
        )

    def build_message(self, to: str, subject: str, body: str, attachment: Optional[Attachment] = None) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg['From'] = self.sender
        msg['To'] = to
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'plain'))

        if attachment is not None:
            part = MIMEApplication(attachment.content, _subtype=attachment.mime_subtype)
            part.add_header('Content-Disposition', 'attachment', filename=attachment.filename)
            msg.attach(part)
        return msg

    def send(self, to: str, subject: str, body: str, attachment: Optional[Attachment] = None) -> None:
        if not self.host:
            raise RuntimeError("EMAIL_HOST is not configured")

        msg = self.build_message(to, subject, body, attachment)

        smtp_cls = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=self.timeout) as server:
            if not self.secure:
                server.starttls()
            if self.user:
                server.login(self.user, self.password)
            server.sendmail(self.sender, to, msg.as_string())

        logger.info("email_sent", to=to, subject=subject, attachment=attachment.filename if attachment else None)
