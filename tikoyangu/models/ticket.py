import enum
from sqlalchemy import JSON, BigInteger, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, CheckConstraint
from sqlalchemy.orm import relationship, validates
from tikoyangu.models.base import Base, BigIntId, TimestampMixin, utcnow


class TicketStatus(str, enum.Enum):
    PENDING = "pending"
    VALID = "valid"
    USED = "used"
    CANCELED = "canceled"
    REFUNDED = "refunded"


# the only status changes a ticket may ever go through
ALLOWED_TRANSITIONS = {
    TicketStatus.PENDING: frozenset({TicketStatus.VALID, TicketStatus.CANCELED}),
    TicketStatus.VALID: frozenset({TicketStatus.USED, TicketStatus.REFUNDED, TicketStatus.CANCELED}),
    TicketStatus.USED: frozenset(),
    TicketStatus.CANCELED: frozenset(),
    TicketStatus.REFUNDED: frozenset(),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return TicketStatus(target) in ALLOWED_TRANSITIONS[TicketStatus(current)]


ticket_status_enum = Enum(TicketStatus, name="ticket_status", values_callable=lambda e: [m.value for m in e])


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    event_id = Column(BigInteger, ForeignKey("events.id"), nullable=False, index=True)

    buyer_name = Column(String, nullable=False)
    buyer_email = Column(String, nullable=True, index=True)
    buyer_phone = Column(String, nullable=False)
    ticket_type = Column(String, nullable=False, default="regular")
    price = Column(Numeric(precision=10, scale=2), nullable=False)
    status = Column(ticket_status_enum, default=TicketStatus.PENDING, nullable=False, index=True)

    # assigned on pending -> valid, never rewritten
    qr_code = Column(String, unique=True, nullable=True, index=True)

    payment_provider = Column(String, nullable=False, default="mpesa")
    mpesa_merchant_request_id = Column(String, nullable=True, index=True)
    mpesa_checkout_request_id = Column(String, unique=True, nullable=False, index=True)
    mpesa_result_code = Column(Integer, nullable=True)
    payment_callback = Column(JSON, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    refund_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refunded_by = Column(BigInteger, nullable=True)

    last_modified_by = Column(String, nullable=True)
    last_modified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_ticket_price_non_negative"),
    )

    event = relationship("Event", back_populates="tickets")
    transitions = relationship("TicketTransition", back_populates="ticket", order_by="TicketTransition.id")

    @validates("price")
    def validate_price(self, key, value):
        if self.price is not None and value != self.price:
            raise ValueError("Ticket price is immutable once set")
        return value

    def __repr__(self):
        return f"<Ticket(id={self.id}, event_id={self.event_id}, status={self.status}, checkout={self.mpesa_checkout_request_id})>"


class TicketTransition(Base):
    __tablename__ = "ticket_transitions"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    ticket_id = Column(BigInteger, ForeignKey("tickets.id"), nullable=False, index=True)
    from_status = Column(ticket_status_enum, nullable=True)
    to_status = Column(ticket_status_enum, nullable=False)
    actor = Column(String, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    ticket = relationship("Ticket", back_populates="transitions")

    def __repr__(self):
        return f"<TicketTransition(ticket_id={self.ticket_id}, {self.from_status} -> {self.to_status}, actor='{self.actor}')>"
