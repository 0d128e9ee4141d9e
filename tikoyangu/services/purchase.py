"""Purchase initiation.

The STK push goes out before any ticket row exists; the row is written only
once M-Pesa has accepted the push, so every pending ticket has a payment in
flight that its callback can resolve.
"""

import re
from decimal import Decimal, InvalidOperation as DecimalError
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tikoyangu.core.errors import InvalidEvent, InvalidInput, PaymentGatewayUnavailable
from tikoyangu.core.mpesa import PaymentGateway
from tikoyangu.schemas.ticket import PurchaseReceipt
from tikoyangu.services.ticket_store import CENT, TicketStore

logger = structlog.get_logger(__name__)

_PHONE_NOISE = re.compile(r"[\s\-()+]")

# Numeric(10, 2) holds at most 99,999,999.99
MAX_PRICE = Decimal("100000000")


def normalize_phone(phone: Optional[str]) -> str:
    """07XXXXXXXX / +2547XXXXXXXX / 2547XXXXXXXX -> 2547XXXXXXXX."""
    value = _PHONE_NOISE.sub("", phone or "")
    if value.startswith("0"):
        value = "254" + value[1:]
    return value


def parse_price(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidInput("price is required and must be a number")
    try:
        price = Decimal(str(value).strip())
        if not price.is_finite():
            raise InvalidInput("price must be a finite number")
        if price < 0:
            raise InvalidInput("price must not be negative")
        if price >= MAX_PRICE or price.quantize(CENT) >= MAX_PRICE:
            raise InvalidInput("price is too large")
        return price.quantize(CENT)
    except (DecimalError, ValueError):
        raise InvalidInput("price is required and must be a number")


class PurchaseOrchestrator:

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.store = TicketStore(db)
        self.gateway = gateway

    def request_purchase(
        self,
        event_id: int,
        buyer_name: Optional[str],
        buyer_email: Optional[str],
        buyer_phone: Optional[str],
        ticket_type: Optional[str],
        price,
        actor: str,
    ) -> PurchaseReceipt:
        buyer_name = (buyer_name or "").strip()
        phone = normalize_phone(buyer_phone)
        if not buyer_name or not phone:
            raise InvalidInput("buyerPhone and buyerName are required for payment")
        if not (phone.isascii() and phone.isdigit()):
            raise InvalidInput("buyerPhone must be a phone number")
        amount = parse_price(price)
        ticket_type = (ticket_type or "").strip() or "regular"
        buyer_email = (buyer_email or "").strip() or None

        event = self.store.get_event(event_id)
        if event is None or not event.is_purchasable:
            raise InvalidEvent("Invalid event")

        push = self.gateway.stk_push(
            amount=amount,
            phone=phone,
            account_reference=event.title or "Ticket",
            transaction_desc=f"Ticket for {event.title}",
        )

        try:
            ticket = self.store.create_pending(
                event_id=event.id,
                buyer_name=buyer_name,
                buyer_email=buyer_email,
                buyer_phone=phone,
                ticket_type=ticket_type,
                price=amount,
                checkout_request_id=push.checkout_request_id,
                merchant_request_id=push.merchant_request_id,
                actor=actor,
            )
        except IntegrityError as e:
            logger.error(
                "pending_ticket_rejected",
                checkout_request_id=push.checkout_request_id,
                error=str(e.orig),
            )
            raise PaymentGatewayUnavailable("Payment gateway returned a checkout id that is already in use") from e

        logger.info(
            "ticket_reserved",
            ticket_id=ticket.id,
            event_id=event.id,
            checkout_request_id=push.checkout_request_id,
            amount=str(amount),
        )
        return PurchaseReceipt(
            ticket_id=ticket.id,
            status=ticket.status,
            checkout_request_id=push.checkout_request_id,
            merchant_request_id=push.merchant_request_id,
            provider_status=push.response_description,
            customer_message=push.customer_message,
        )
