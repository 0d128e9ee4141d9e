import base64
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from tikoyangu.core.errors import PaymentGatewayUnavailable
from tikoyangu.core.mpesa import MpesaGateway, mpesa_timestamp, stk_password, whole_amount

ACCEPTED = {
    "MerchantRequestID": "29115-34620561-1",
    "CheckoutRequestID": "ws_CO_191220191020363925",
    "ResponseCode": "0",
    "ResponseDescription": "Success. Request accepted for processing",
    "CustomerMessage": "Success. Request accepted for processing",
}


class Daraja:
    """Scripted Daraja sandbox for httpx.MockTransport."""

    def __init__(self, stk_responses=None):
        self.requests = []
        self.token_requests = 0
        self.stk_responses = list(stk_responses or [httpx.Response(200, json=ACCEPTED)])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/v1/generate":
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": f"token-{self.token_requests}", "expires_in": "3599"})
        response = self.stk_responses.pop(0) if len(self.stk_responses) > 1 else self.stk_responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_gateway(daraja):
    client = httpx.Client(base_url="https://sandbox.safaricom.co.ke", transport=httpx.MockTransport(daraja))
    return MpesaGateway(
        base_url="https://sandbox.safaricom.co.ke",
        consumer_key="key",
        consumer_secret="secret",
        shortcode="174379",
        passkey="passkey",
        callback_url="https://tikoyangu.example/mpesa/callback",
        client=client,
    )


def test_helpers():
    assert mpesa_timestamp(datetime(2026, 10, 17, 6, 30, 5, tzinfo=timezone.utc)) == "20261017093005"
    assert base64.b64decode(stk_password("174379", "pk", "20261017093005")) == b"174379pk20261017093005"
    assert whole_amount(Decimal("999.50")) == 1000
    assert whole_amount(Decimal("999.49")) == 999


def test_stk_push_request_shape():
    daraja = Daraja()
    gateway = make_gateway(daraja)

    result = gateway.stk_push(Decimal("1000.00"), "254712345678", "Nairobi Jazz Night", "Ticket for Nairobi Jazz Night")

    assert result.checkout_request_id == "ws_CO_191220191020363925"
    assert result.merchant_request_id == "29115-34620561-1"

    token_request, stk_request = daraja.requests
    assert token_request.url.params["grant_type"] == "client_credentials"
    assert token_request.headers["Authorization"].startswith("Basic ")
    assert stk_request.headers["Authorization"] == "Bearer token-1"

    payload = json.loads(stk_request.content)
    assert payload["BusinessShortCode"] == "174379"
    assert payload["Amount"] == 1000
    assert payload["PartyA"] == payload["PhoneNumber"] == "254712345678"
    assert payload["PartyB"] == "174379"
    assert payload["TransactionType"] == "CustomerPayBillOnline"
    assert payload["CallBackURL"] == "https://tikoyangu.example/mpesa/callback"
    assert payload["AccountReference"] == "Nairobi Jazz"
    assert len(payload["TransactionDesc"]) == 13
    assert base64.b64decode(payload["Password"]).decode() == f"174379passkey{payload['Timestamp']}"


def test_token_is_cached():
    daraja = Daraja()
    gateway = make_gateway(daraja)
    gateway.stk_push(Decimal("10"), "254712345678", "ref", "desc")
    gateway.stk_push(Decimal("10"), "254712345678", "ref", "desc")
    assert daraja.token_requests == 1


def test_unauthorised_push_drops_cached_token():
    daraja = Daraja([httpx.Response(401, json={"errorMessage": "Invalid Access Token"}), httpx.Response(200, json=ACCEPTED)])
    gateway = make_gateway(daraja)

    with pytest.raises(PaymentGatewayUnavailable):
        gateway.stk_push(Decimal("10"), "254712345678", "ref", "desc")
    gateway.stk_push(Decimal("10"), "254712345678", "ref", "desc")
    assert daraja.token_requests == 2


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="upstream error"),
    httpx.Response(400, json={"errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid PhoneNumber"}),
    httpx.Response(200, json={**ACCEPTED, "ResponseCode": "1"}),
    httpx.Response(200, json={"ResponseCode": "0"}),
    httpx.ReadTimeout("timed out"),
    httpx.ConnectError("connection refused"),
])
def test_push_failures_raise_gateway_unavailable(response):
    gateway = make_gateway(Daraja([response]))
    with pytest.raises(PaymentGatewayUnavailable):
        gateway.stk_push(Decimal("10"), "254712345678", "ref", "desc")


def test_token_failure_raises_gateway_unavailable():
    def handler(request):
        return httpx.Response(400, json={"errorMessage": "Invalid credentials"})

    client = httpx.Client(base_url="https://sandbox.safaricom.co.ke", transport=httpx.MockTransport(handler))
    gateway = MpesaGateway("https://sandbox.safaricom.co.ke", "k", "s", "174379", "pk", "https://cb", client=client)
    with pytest.raises(PaymentGatewayUnavailable):
        gateway.get_access_token()
