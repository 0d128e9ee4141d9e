"""M-Pesa Daraja client: OAuth token + STK push.

The client is built once at application startup and shared by every
request; the access token cache is the only state it holds.
"""

import base64
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import httpx
import structlog

from tikoyangu.core.errors import PaymentGatewayUnavailable

logger = structlog.get_logger(__name__)

EAT = timezone(timedelta(hours=3))

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"

# refresh this many seconds before Daraja says the token expires
TOKEN_EXPIRY_SKEW = 60


@dataclass(frozen=True)
class StkPushResult:
    """Gateway acknowledgement of an accepted STK push."""

    merchant_request_id: Optional[str]
    checkout_request_id: str
    response_code: str
    response_description: Optional[str] = None
    customer_message: Optional[str] = None


class PaymentGateway(ABC):
    """Push-payment gateway contract used by the purchase orchestrator."""

    @abstractmethod
    def stk_push(self, amount: Decimal, phone: str, account_reference: str, transaction_desc: str) -> StkPushResult:
        """Prompt ``phone`` to pay ``amount``; raise PaymentGatewayUnavailable if not accepted."""
        ...

    def close(self) -> None:
        pass


def mpesa_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(EAT)).astimezone(EAT).strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


def whole_amount(amount: Decimal) -> int:
    # Daraja only accepts whole shillings
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class MpesaGateway(PaymentGateway):

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        callback_url: str,
        transaction_type: str = "CustomerPayBillOnline",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.transaction_type = transaction_type
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "MpesaGateway":
        return cls(
            base_url=settings.MPESA_BASE_URL,
            consumer_key=settings.MPESA_CONSUMER_KEY,
            consumer_secret=settings.MPESA_CONSUMER_SECRET,
            shortcode=settings.MPESA_SHORTCODE,
            passkey=settings.MPESA_PASSKEY,
            callback_url=settings.MPESA_CALLBACK_URL,
            transaction_type=settings.MPESA_TRANSACTION_TYPE,
            timeout=settings.MPESA_TIMEOUT_SECONDS,
        )

    def close(self) -> None:
        self._client.close()

    def get_access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            try:
                res = self._client.get(
                    TOKEN_PATH,
                    params={"grant_type": "client_credentials"},
                    auth=(self.consumer_key, self.consumer_secret),
                )
                res.raise_for_status()
                data = res.json()
                token = data["access_token"]
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.error("mpesa_token_failed", error=str(e))
                raise PaymentGatewayUnavailable("Failed to get M-Pesa access token") from e

            expires_in = int(data.get("expires_in", 3599))
            self._token = token
            self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_SKEW, 0)
            return token

    def invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    def stk_push(self, amount: Decimal, phone: str, account_reference: str, transaction_desc: str) -> StkPushResult:
        access_token = self.get_access_token()
        timestamp = mpesa_timestamp()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": stk_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": self.transaction_type,
            "Amount": whole_amount(amount),
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            # Daraja caps these at 12 and 13 characters
            "AccountReference": account_reference[:12],
            "TransactionDesc": transaction_desc[:13],
        }

        try:
            res = self._client.post(
                STK_PUSH_PATH,
                json=payload,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TimeoutException as e:
            logger.error("mpesa_stk_push_timeout", phone=phone)
            raise PaymentGatewayUnavailable("M-Pesa STK push timed out") from e
        except httpx.HTTPError as e:
            logger.error("mpesa_stk_push_transport_error", phone=phone, error=str(e))
            raise PaymentGatewayUnavailable("M-Pesa STK push failed") from e

        if res.status_code == 401:
            self.invalidate_token()

        try:
            data = res.json()
        except ValueError:
            data = {}

        if res.is_error:
            logger.error(
                "mpesa_stk_push_rejected",
                status_code=res.status_code,
                error_code=data.get("errorCode"),
                error_message=data.get("errorMessage"),
            )
            raise PaymentGatewayUnavailable("M-Pesa STK push failed")

        response_code = str(data.get("ResponseCode", ""))
        checkout_request_id = data.get("CheckoutRequestID")
        if response_code != "0" or not checkout_request_id:
            logger.error(
                "mpesa_stk_push_not_accepted",
                response_code=response_code,
                description=data.get("ResponseDescription"),
            )
            raise PaymentGatewayUnavailable("M-Pesa did not accept the payment request")

        logger.info(
            "mpesa_stk_push_accepted",
            checkout_request_id=checkout_request_id,
            merchant_request_id=data.get("MerchantRequestID"),
        )
        return StkPushResult(
            merchant_request_id=data.get("MerchantRequestID"),
            checkout_request_id=checkout_request_id,
            response_code=response_code,
            response_description=data.get("ResponseDescription"),
            customer_message=data.get("CustomerMessage"),
        )
