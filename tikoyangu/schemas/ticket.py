from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Dict, List, Optional, Union
from datetime import date, datetime, time
from decimal import Decimal
from tikoyangu.models.ticket import TicketStatus


class TicketPurchaseRequest(BaseModel):
    event_id: int
    buyer_name: Optional[str] = None
    buyer_email: Optional[EmailStr] = None
    buyer_phone: Optional[str] = None
    ticket_type: str = "regular"
    # parsed by the purchase orchestrator so bad values map to InvalidInput
    price: Union[Decimal, str, None] = None


class PurchaseReceipt(BaseModel):
    ticket_id: int
    status: TicketStatus
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    provider_status: Optional[str] = None
    customer_message: Optional[str] = None


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    buyer_name: str
    buyer_email: Optional[str] = None
    buyer_phone: str
    ticket_type: str
    price: Decimal
    status: TicketStatus
    qr_code: Optional[str] = None
    payment_provider: Optional[str] = None
    mpesa_merchant_request_id: Optional[str] = None
    mpesa_checkout_request_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[int] = None
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TicketTransitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: Optional[TicketStatus] = None
    to_status: TicketStatus
    actor: str
    note: Optional[str] = None
    created_at: datetime


class RefundRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str):
        if not v or not v.strip():
            raise ValueError("Refund reason is required")
        return v.strip()


class StatusUpdateRequest(BaseModel):
    status: TicketStatus


class ScanRequest(BaseModel):
    credential: str = Field(min_length=1)


class RevenueTotals(BaseModel):
    total: Decimal
    paid: Decimal
    refunded: Decimal


class EventRevenue(BaseModel):
    event_id: int
    event_title: str
    tickets_sold: int
    revenue: Decimal


class TicketOverview(BaseModel):
    total: int
    by_status: Dict[str, int]
    revenue: RevenueTotals
    average_ticket_price: Decimal
    tickets_by_month: Dict[str, int]
    top_events: List[EventRevenue]


class DailyRevenue(BaseModel):
    day: date
    revenue: Decimal
    tickets: int


class RevenueReport(BaseModel):
    total_revenue: Decimal
    paid_revenue: Decimal
    refunded_amount: Decimal
    tickets_sold: int
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    daily_revenue: List[DailyRevenue]


class TicketConfirmation(BaseModel):
    """Detached copy of a confirmed ticket and its event.

    Handed to background work so nothing outside the request touches the
    request's database session.
    """

    ticket_id: int
    credential: str
    buyer_name: str
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    ticket_type: str
    price: Decimal
    event_id: int
    event_title: str
    event_venue: Optional[str] = None
    event_location: Optional[str] = None
    event_start_date: Optional[date] = None
    event_start_time: Optional[time] = None
    event_end_date: Optional[date] = None
    event_end_time: Optional[time] = None

    @classmethod
    def from_ticket(cls, ticket) -> "TicketConfirmation":
        event = ticket.event
        return cls(
            ticket_id=ticket.id,
            credential=ticket.qr_code,
            buyer_name=ticket.buyer_name,
            buyer_email=ticket.buyer_email,
            buyer_phone=ticket.buyer_phone,
            ticket_type=ticket.ticket_type,
            price=ticket.price,
            event_id=ticket.event_id,
            event_title=event.title if event else "Your Event",
            event_venue=event.venue if event else None,
            event_location=event.location if event else None,
            event_start_date=event.start_date if event else None,
            event_start_time=event.start_time if event else None,
            event_end_date=event.end_date if event else None,
            event_end_time=event.end_time if event else None,
        )


class BuyerNotice(BaseModel):
    ticket_id: int
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    subject: str
    message: str
