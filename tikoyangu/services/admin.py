"""Operator and administrator actions on tickets.

Every status change still goes through ``TicketStore.transition``; this
module adds the who-may-do-what checks, the refund bookkeeping and the
buyer notices that follow.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from tikoyangu.core.errors import AlreadyRefunded, Forbidden, InvalidOperation, NotFound
from tikoyangu.core.security import ensure_event_access, is_admin
from tikoyangu.models.base import utcnow
from tikoyangu.models.ticket import Ticket, TicketStatus, TicketTransition, can_transition
from tikoyangu.schemas.ticket import (
    BuyerNotice,
    DailyRevenue,
    EventRevenue,
    RevenueReport,
    RevenueTotals,
    TicketConfirmation,
    TicketOverview,
)
from tikoyangu.services.reconciler import new_credential
from tikoyangu.services.ticket_store import TicketStore, operator_actor, to_money

logger = structlog.get_logger(__name__)

OVERRIDE_REFUND_REASON = "Administrative override"

PAID_STATUSES = (TicketStatus.VALID.value, TicketStatus.USED.value)
COLLECTED_STATUSES = PAID_STATUSES + (TicketStatus.REFUNDED.value,)
TOP_EVENTS = 10


def _status_notice(ticket: Ticket, status: TicketStatus) -> Tuple[str, str]:
    title = ticket.event.title if ticket.event else "your event"
    if status == TicketStatus.CANCELED:
        return "Ticket Canceled", f"Your ticket for {title} has been canceled."
    if status == TicketStatus.USED:
        return "Ticket Used", f"Your ticket for {title} has been used."
    return "Ticket Status Updated", f"Your ticket for {title} status has been updated to: {status.value}"


class TicketAdmin:

    def __init__(self, db: Session, pipeline, schedule: Callable[..., Any]):
        self.store = TicketStore(db)
        self.pipeline = pipeline
        self.schedule = schedule

    # -- lookups with ownership ------------------------------------------

    def get_for_viewer(self, ticket_id: int, user: dict) -> Ticket:
        ticket = self.store.require(ticket_id)
        if ticket.buyer_email and user.get('email') and ticket.buyer_email.lower() == str(user['email']).lower():
            return ticket
        ensure_event_access(user, ticket.event)
        return ticket

    def list_for_event(self, event_id: int, user: dict) -> List[Ticket]:
        event = self.store.get_event(event_id)
        if event is None:
            raise NotFound("Event not found")
        ensure_event_access(user, event)
        return self.store.list_for_event(event_id)

    def list_for_organizer(self, user: dict, organizer_id: Optional[int] = None) -> List[Ticket]:
        """Tickets across every event of ``organizer_id`` (the caller when omitted)."""
        if organizer_id is None:
            organizer_id = user.get('id')
        if organizer_id is None:
            raise Forbidden("Not allowed")
        if not is_admin(user) and int(organizer_id) != int(user['id']):
            raise Forbidden("Not allowed")
        return self.store.list_for_organizer(int(organizer_id))

    def transitions(self, ticket_id: int, user: dict) -> List[TicketTransition]:
        ticket = self.store.require(ticket_id)
        ensure_event_access(user, ticket.event)
        return self.store.transitions_for(ticket_id)

    # -- operator actions -------------------------------------------------

    def mark_used(self, ticket_id: int, user: dict) -> Ticket:
        ticket = self.store.require(ticket_id)
        ensure_event_access(user, ticket.event)
        return self._apply(ticket, TicketStatus.USED, user, note="Marked as used")

    def cancel(self, ticket_id: int, user: dict) -> Ticket:
        ticket = self.store.require(ticket_id)
        ensure_event_access(user, ticket.event)
        # a pending ticket is only ever resolved by its payment callback
        if ticket.status != TicketStatus.VALID:
            raise InvalidOperation(f"Cannot cancel a {TicketStatus(ticket.status).value} ticket")
        return self._apply(ticket, TicketStatus.CANCELED, user, note="Canceled by operator")

    def scan(self, credential: str, user: dict) -> Ticket:
        ticket = self.store.get_by_credential(credential.strip())
        if ticket is None:
            raise NotFound("No ticket matches this code")
        ensure_event_access(user, ticket.event)
        if ticket.status != TicketStatus.VALID:
            raise InvalidOperation(f"Ticket is {TicketStatus(ticket.status).value}")
        return self._apply(ticket, TicketStatus.USED, user, note="Scanned at entrance")

    def _apply(self, ticket: Ticket, target: TicketStatus, user: dict, note: str, **values) -> Ticket:
        current = TicketStatus(ticket.status)
        if not can_transition(current, target):
            raise InvalidOperation(f"Cannot move a ticket from {current.value} to {target.value}")
        if not self.store.transition(ticket.id, current, target, actor=operator_actor(user.get('id')), note=note, **values):
            raise InvalidOperation("Ticket status changed concurrently, reload and retry")
        return self.store.get(ticket.id)

    # -- admin ----------------------------------------------------------

    def refund(self, ticket_id: int, reason: str, acting_admin_id: int) -> Ticket:
        ticket = self.store.require(ticket_id)
        self._ensure_refundable(ticket)

        applied = self.store.transition(
            ticket.id,
            TicketStatus.VALID,
            TicketStatus.REFUNDED,
            actor=operator_actor(acting_admin_id),
            note=reason,
            refund_reason=reason,
            refunded_at=utcnow(),
            refunded_by=acting_admin_id,
        )
        ticket = self.store.get(ticket.id)
        if not applied:
            # someone else moved it first; report against what it is now
            self._ensure_refundable(ticket)
            raise InvalidOperation("Ticket status changed concurrently, reload and retry")

        logger.info("ticket_refunded", ticket_id=ticket.id, refunded_by=acting_admin_id)
        title = ticket.event.title if ticket.event else "your event"
        self.schedule(self.pipeline.notify_buyer, BuyerNotice(
            ticket_id=ticket.id,
            buyer_email=ticket.buyer_email,
            buyer_phone=ticket.buyer_phone,
            subject="Ticket Refunded",
            message=f"Your ticket for {title} has been refunded. Reason: {reason}",
        ))
        return ticket

    @staticmethod
    def _ensure_refundable(ticket: Ticket) -> None:
        status = TicketStatus(ticket.status)
        if status == TicketStatus.REFUNDED:
            raise AlreadyRefunded("Ticket already refunded")
        if status == TicketStatus.USED:
            raise InvalidOperation("Cannot refund used ticket")
        if status != TicketStatus.VALID:
            raise InvalidOperation(f"Cannot refund a {status.value} ticket")

    def override_status(self, ticket_id: int, status: TicketStatus, acting_admin: dict) -> Ticket:
        if not is_admin(acting_admin):
            raise Forbidden("Only administrators can override ticket status")
        target = TicketStatus(status)
        if target == TicketStatus.REFUNDED:
            return self.refund(ticket_id, OVERRIDE_REFUND_REASON, acting_admin.get('id'))

        ticket = self.store.require(ticket_id)
        current = TicketStatus(ticket.status)
        if current == target:
            return ticket

        extra = {}
        if current == TicketStatus.PENDING and target == TicketStatus.VALID:
            # manual payment confirmation gets a credential like a callback would
            extra = {"qr_code": new_credential(), "paid_at": utcnow()}

        ticket = self._apply(ticket, target, acting_admin, note="Administrative override", **extra)

        if target == TicketStatus.VALID:
            self.schedule(self.pipeline.confirm, TicketConfirmation.from_ticket(ticket))
        else:
            subject, message = _status_notice(ticket, target)
            self.schedule(self.pipeline.notify_buyer, BuyerNotice(
                ticket_id=ticket.id,
                buyer_email=ticket.buyer_email,
                buyer_phone=ticket.buyer_phone,
                subject=subject,
                message=message,
            ))
        return ticket

    # -- reporting ------------------------------------------------------

    def search(self, **filters) -> Tuple[List[Ticket], int]:
        return self.store.search(**filters)

    def overview(self) -> TicketOverview:
        totals = self.store.totals_by_status()
        revenue = self._revenue(totals)
        collected = sum(totals[s][0] for s in COLLECTED_STATUSES if s in totals)
        return TicketOverview(
            total=sum(count for count, _ in totals.values()),
            by_status={status: count for status, (count, _) in totals.items()},
            revenue=revenue,
            average_ticket_price=to_money(revenue.total / collected) if collected else to_money(0),
            tickets_by_month=self.store.counts_by_month(),
            top_events=[
                EventRevenue(event_id=event_id, event_title=title, tickets_sold=count, revenue=amount)
                for event_id, title, count, amount in self.store.top_events(COLLECTED_STATUSES, limit=TOP_EVENTS)
            ],
        )

    def revenue_report(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> RevenueReport:
        totals = self.store.totals_by_status(start_date, end_date)
        revenue = self._revenue(totals)
        return RevenueReport(
            total_revenue=revenue.total,
            paid_revenue=revenue.paid,
            refunded_amount=revenue.refunded,
            tickets_sold=sum(totals.get(s, (0, None))[0] for s in COLLECTED_STATUSES),
            period_start=start_date,
            period_end=end_date,
            daily_revenue=[
                DailyRevenue(day=day, revenue=amount, tickets=count)
                for day, count, amount in self.store.daily_totals(start_date, end_date, statuses=PAID_STATUSES)
            ],
        )

    @staticmethod
    def _revenue(totals: dict) -> RevenueTotals:
        def amount(statuses):
            return to_money(sum((totals[s][1] for s in statuses if s in totals), to_money(0)))

        # pending and canceled tickets never collected any money
        return RevenueTotals(
            total=amount(COLLECTED_STATUSES),
            paid=amount(PAID_STATUSES),
            refunded=amount((TicketStatus.REFUNDED.value,)),
        )

    def stale_pending(self, older_than: timedelta) -> List[Ticket]:
        return self.store.stale_pending(older_than)
