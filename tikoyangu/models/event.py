import enum
from sqlalchemy import BigInteger, Column, Date, Enum, Numeric, String, Text, Time
from sqlalchemy.orm import relationship
from tikoyangu.models.base import Base, BigIntId, TimestampMixin


class EventStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"



class Event(Base, TimestampMixin):
    """Event as consumed by the ticketing core. Owned and edited elsewhere."""

    __tablename__ = "events"

    id = Column(BigIntId, primary_key=True, index=True, autoincrement=True)
    organizer_id = Column(BigInteger, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    venue = Column(String, nullable=False)
    location = Column(String, nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    earlybird_price = Column(Numeric(precision=10, scale=2), nullable=True)
    regular_price = Column(Numeric(precision=10, scale=2), nullable=False, default=0)
    vip_price = Column(Numeric(precision=10, scale=2), nullable=True)
    vvip_price = Column(Numeric(precision=10, scale=2), nullable=True)
    at_the_gate_price = Column(Numeric(precision=10, scale=2), nullable=True)

    status = Column(
        Enum(EventStatus, name="event_status", values_callable=lambda e: [m.value for m in e]),
        default=EventStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    tickets = relationship("Ticket", back_populates="event")

    @property
    def is_purchasable(self) -> bool:
        return self.status == EventStatus.ACTIVE

    def __repr__(self):
        return f"<Event(id={self.id}, title='{self.title}', status='{self.status}')>"
