from tikoyangu.models.event import Event, EventStatus
from tikoyangu.models.ticket import Ticket, TicketStatus, TicketTransition


__all__ = [
    "Event",
    "EventStatus",
    "Ticket",
    "TicketStatus",
    "TicketTransition"
]
