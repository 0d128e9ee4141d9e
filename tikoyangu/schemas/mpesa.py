"""M-Pesa STK callback envelope.

Daraja posts ``{"Body": {"stkCallback": {...}}}``; sandboxes, replays and
test harnesses often post the inner object or a flat camelCase variant.
Only the checkout id and the result code drive reconciliation, everything
else travels along as the opaque raw payload.
"""

from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator


class InvalidCallback(ValueError):
    pass


class StkCallback(BaseModel):
    model_config = ConfigDict(extra="ignore")

    checkout_request_id: str = Field(
        validation_alias=AliasChoices("CheckoutRequestID", "checkoutRequestId", "checkoutId", "checkout_request_id"),
        min_length=1,
    )
    result_code: int = Field(validation_alias=AliasChoices("ResultCode", "resultCode", "result_code"))
    merchant_request_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MerchantRequestID", "merchantRequestId", "merchant_request_id"),
    )
    result_desc: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ResultDesc", "resultDesc", "result_desc"),
    )

    @field_validator("checkout_request_id")
    @classmethod
    def strip_checkout_id(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("CheckoutRequestID is empty")
        return v

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0


def parse_stk_callback(payload: Any) -> StkCallback:
    if not isinstance(payload, dict):
        raise InvalidCallback("Callback payload is not a JSON object")

    node = payload
    body = payload.get("Body") or payload.get("body")
    if isinstance(body, dict):
        node = body
    if isinstance(node.get("stkCallback"), dict):
        node = node["stkCallback"]

    try:
        return StkCallback.model_validate(node)
    except ValidationError as e:
        raise InvalidCallback(f"Unrecognised callback envelope: {e.error_count()} error(s)") from e
