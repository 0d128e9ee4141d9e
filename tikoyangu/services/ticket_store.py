"""Durable ticket records and the lifecycle state machine.

``transition`` is the only code path that changes ``Ticket.status``. It is a
single ``UPDATE ... WHERE id = :id AND status = :expected`` so two writers
racing on the same row cannot both win: the loser sees zero affected rows
and gets ``False`` back.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import String, cast, func, update
from sqlalchemy.orm import Session, joinedload

from tikoyangu.core.errors import InvalidOperation, NotFound
from tikoyangu.models.base import utcnow
from tikoyangu.models.event import Event
from tikoyangu.models.ticket import Ticket, TicketStatus, TicketTransition, can_transition

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")

SYSTEM_RECONCILER = "system:mpesa-reconciler"


def operator_actor(user_id) -> str:
    return f"user:{user_id}"


def to_money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


class TicketStore:

    def __init__(self, db: Session):
        self.db = db

    # -- reads -------------------------------------------------------------

    def get(self, ticket_id: int) -> Optional[Ticket]:
        return self.db.get(Ticket, ticket_id, populate_existing=True)

    def require(self, ticket_id: int) -> Ticket:
        ticket = self.get(ticket_id)
        if ticket is None:
            raise NotFound("Ticket not found")
        return ticket

    def get_by_checkout_id(self, checkout_request_id: str) -> Optional[Ticket]:
        if not checkout_request_id:
            return None
        return (
            self.db.query(Ticket)
            .filter(Ticket.mpesa_checkout_request_id == checkout_request_id)
            .populate_existing()
            .one_or_none()
        )

    def get_by_credential(self, credential: str) -> Optional[Ticket]:
        return self.db.query(Ticket).filter(Ticket.qr_code == credential).populate_existing().one_or_none()

    def get_event(self, event_id: int) -> Optional[Event]:
        return self.db.get(Event, event_id)

    def list_for_event(self, event_id: int) -> List[Ticket]:
        return (
            self.db.query(Ticket)
            .filter(Ticket.event_id == event_id)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .all()
        )

    def list_for_organizer(self, organizer_id: int) -> List[Ticket]:
        return (
            self.db.query(Ticket)
            .join(Event, Ticket.event_id == Event.id)
            .filter(Event.organizer_id == organizer_id)
            .options(joinedload(Ticket.event))
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .all()
        )

    def transitions_for(self, ticket_id: int) -> List[TicketTransition]:
        return (
            self.db.query(TicketTransition)
            .filter(TicketTransition.ticket_id == ticket_id)
            .order_by(TicketTransition.id.asc())
            .all()
        )

    def search(
        self,
        event_id: Optional[int] = None,
        buyer_email: Optional[str] = None,
        buyer_name: Optional[str] = None,
        status: Optional[TicketStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Ticket], int]:
        query = self.db.query(Ticket)
        if event_id:
            query = query.filter(Ticket.event_id == event_id)
        if buyer_email:
            query = query.filter(Ticket.buyer_email.ilike(f"%{buyer_email}%"))
        if buyer_name:
            query = query.filter(Ticket.buyer_name.ilike(f"%{buyer_name}%"))
        if status:
            query = query.filter(Ticket.status == TicketStatus(status))
        if start_date:
            query = query.filter(Ticket.created_at >= start_date)
        if end_date:
            query = query.filter(Ticket.created_at <= end_date)

        total = query.count()
        tickets = (
            query.options(joinedload(Ticket.event))
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return tickets, total

    def stale_pending(self, older_than: timedelta, now: Optional[datetime] = None) -> List[Ticket]:
        cutoff = (now or utcnow()) - older_than
        return (
            self.db.query(Ticket)
            .filter(Ticket.status == TicketStatus.PENDING, Ticket.created_at < cutoff)
            .order_by(Ticket.created_at.asc())
            .all()
        )

    def totals_by_status(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
        """{status: (count, summed price)} over the optional creation window."""
        query = self.db.query(Ticket.status, func.count(Ticket.id), func.sum(Ticket.price))
        query = self._window(query, start_date, end_date)
        return {
            TicketStatus(row_status).value: (count, to_money(amount))
            for row_status, count, amount in query.group_by(Ticket.status).all()
        }

    def daily_totals(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        statuses: Optional[Tuple[str, ...]] = None,
    ) -> list:
        day = func.date(Ticket.created_at)
        query = self.db.query(day, func.count(Ticket.id), func.sum(Ticket.price))
        query = self._window(query, start_date, end_date)
        if statuses:
            query = query.filter(Ticket.status.in_([TicketStatus(s) for s in statuses]))
        return [(str(d), count, to_money(amount)) for d, count, amount in query.group_by(day).order_by(day).all()]

    def counts_by_month(self) -> dict:
        """{"YYYY-MM": ticket count} by creation month, every status."""
        month = func.substr(cast(Ticket.created_at, String), 1, 7)
        rows = self.db.query(month, func.count(Ticket.id)).group_by(month).order_by(month).all()
        return {m: count for m, count in rows}

    def top_events(self, statuses: Tuple[str, ...], limit: int = 10) -> list:
        """[(event_id, title, tickets, revenue)] ordered by revenue, highest first."""
        revenue = func.sum(Ticket.price)
        rows = (
            self.db.query(Event.id, Event.title, func.count(Ticket.id), revenue)
            .join(Ticket, Ticket.event_id == Event.id)
            .filter(Ticket.status.in_([TicketStatus(s) for s in statuses]))
            .group_by(Event.id, Event.title)
            .order_by(revenue.desc(), Event.id.asc())
            .limit(limit)
            .all()
        )
        return [(event_id, title, count, to_money(amount)) for event_id, title, count, amount in rows]

    @staticmethod
    def _window(query, start_date, end_date):
        if start_date:
            query = query.filter(Ticket.created_at >= start_date)
        if end_date:
            query = query.filter(Ticket.created_at <= end_date)
        return query

    # -- writes ------------------------------------------------------------

    def create_pending(
        self,
        event_id: int,
        buyer_name: str,
        buyer_email: Optional[str],
        buyer_phone: str,
        ticket_type: str,
        price: Decimal,
        checkout_request_id: str,
        merchant_request_id: Optional[str],
        actor: str,
    ) -> Ticket:
        now = utcnow()
        ticket = Ticket(
            event_id=event_id,
            buyer_name=buyer_name,
            buyer_email=buyer_email,
            buyer_phone=buyer_phone,
            ticket_type=ticket_type,
            price=price,
            status=TicketStatus.PENDING,
            payment_provider="mpesa",
            mpesa_checkout_request_id=checkout_request_id,
            mpesa_merchant_request_id=merchant_request_id,
            last_modified_by=actor,
            last_modified_at=now,
        )
        try:
            self.db.add(ticket)
            self.db.flush()
            self.db.add(TicketTransition(
                ticket_id=ticket.id,
                from_status=None,
                to_status=TicketStatus.PENDING,
                actor=actor,
                note="STK push accepted",
                created_at=now,
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(ticket)
        return ticket

    def transition(
        self,
        ticket_id: int,
        from_status: TicketStatus,
        to_status: TicketStatus,
        actor: str,
        note: Optional[str] = None,
        **values,
    ) -> bool:
        """Move ``ticket_id`` from ``from_status`` to ``to_status`` if it is still there.

        Extra column values are written by the same statement. Returns False
        when the row is no longer in ``from_status``.
        """
        from_status = TicketStatus(from_status)
        to_status = TicketStatus(to_status)
        if not can_transition(from_status, to_status):
            raise InvalidOperation(f"Cannot move a ticket from {from_status.value} to {to_status.value}")

        now = utcnow()
        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket_id, Ticket.status == from_status)
            .values(status=to_status, last_modified_by=actor, last_modified_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                self.db.rollback()
                logger.info(
                    "ticket_transition_skipped",
                    ticket_id=ticket_id,
                    expected=from_status.value,
                    target=to_status.value,
                )
                return False

            self.db.add(TicketTransition(
                ticket_id=ticket_id,
                from_status=from_status,
                to_status=to_status,
                actor=actor,
                note=note,
                created_at=now,
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "ticket_transitioned",
            ticket_id=ticket_id,
            from_status=from_status.value,
            to_status=to_status.value,
            actor=actor,
        )
        return True

