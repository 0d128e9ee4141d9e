"""SMS channel backed by the Twilio Messages REST API."""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class SmsChannel(ABC):

    @abstractmethod
    def send(self, to: str, body: str) -> None:
        """Deliver one text message; raise on failure."""
        ...

    def close(self) -> None:
        pass


class TwilioSmsChannel(SmsChannel):

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        base_url: str = "https://api.twilio.com",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings) -> "TwilioSmsChannel":
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_PHONE_NUMBER,
            base_url=settings.TWILIO_BASE_URL,
            timeout=settings.SMS_TIMEOUT_SECONDS,
        )

    def close(self) -> None:
        self._client.close()

    def send(self, to: str, body: str) -> None:
        if not (self.account_sid and self.auth_token and self.from_number):
            raise RuntimeError("Twilio credentials are not configured")

        # Twilio wants E.164
        recipient = to if to.startswith("+") else f"+{to}"
        res = self._client.post(
            f"/2010-04-01/Accounts/{self.account_sid}/Messages.json",
            data={"From": self.from_number, "To": recipient, "Body": body},
            auth=(self.account_sid, self.auth_token),
        )
        res.raise_for_status()
        logger.info("sms_sent", to=recipient, message_sid=res.json().get("sid"))
