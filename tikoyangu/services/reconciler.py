"""M-Pesa callback reconciliation.

Callbacks are at-least-once: the same outcome may arrive twice, late, or
racing a twin. Only a ticket still ``pending`` is moved, and the conditional
update in the store decides which delivery wins; every other delivery is
reported as a duplicate and does nothing.
"""

import enum
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog
from sqlalchemy.orm import Session

from tikoyangu.models.base import utcnow
from tikoyangu.models.ticket import Ticket, TicketStatus
from tikoyangu.schemas.ticket import TicketConfirmation
from tikoyangu.services.ticket_store import SYSTEM_RECONCILER, TicketStore

logger = structlog.get_logger(__name__)

# schedule(fn, *args): BackgroundTasks.add_task in the API, a direct call in tests
Scheduler = Callable[..., Any]

SUCCESS_RESULT_CODE = 0


class ReconcileOutcome(str, enum.Enum):
    NOT_FOUND = "not_found"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    DUPLICATE = "duplicate"


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    ticket: Optional[Ticket] = None


def new_credential() -> str:
    return str(uuid.uuid4())


class WebhookReconciler:

    def __init__(self, db: Session, on_confirmed: Callable[[TicketConfirmation], Any], schedule: Scheduler):
        self.store = TicketStore(db)
        self.on_confirmed = on_confirmed
        self.schedule = schedule

    def reconcile(self, checkout_request_id: str, result_code: int, raw_payload: Any = None) -> ReconcileResult:
        log = logger.bind(checkout_request_id=checkout_request_id, result_code=result_code)

        ticket = self.store.get_by_checkout_id(checkout_request_id)
        if ticket is None:
            log.warning("callback_ticket_not_found")
            return ReconcileResult(ReconcileOutcome.NOT_FOUND)

        log = log.bind(ticket_id=ticket.id)
        if ticket.status != TicketStatus.PENDING:
            log.info("callback_already_resolved", status=TicketStatus(ticket.status).value)
            return ReconcileResult(ReconcileOutcome.DUPLICATE, ticket)

        paid = result_code == SUCCESS_RESULT_CODE
        if paid:
            applied = self.store.transition(
                ticket.id,
                TicketStatus.PENDING,
                TicketStatus.VALID,
                actor=SYSTEM_RECONCILER,
                note="M-Pesa payment confirmed",
                qr_code=new_credential(),
                mpesa_result_code=result_code,
                payment_callback=raw_payload,
                paid_at=utcnow(),
            )
        else:
            applied = self.store.transition(
                ticket.id,
                TicketStatus.PENDING,
                TicketStatus.CANCELED,
                actor=SYSTEM_RECONCILER,
                note=f"M-Pesa payment failed with result code {result_code}",
                mpesa_result_code=result_code,
                payment_callback=raw_payload,
            )

        ticket = self.store.get(ticket.id)
        if not applied:
            log.info("callback_lost_race", status=TicketStatus(ticket.status).value)
            return ReconcileResult(ReconcileOutcome.DUPLICATE, ticket)

        if not paid:
            log.info("ticket_payment_canceled")
            return ReconcileResult(ReconcileOutcome.CANCELED, ticket)

        # snapshot before the session goes away
        confirmation = TicketConfirmation.from_ticket(ticket)
        self.schedule(self.on_confirmed, confirmation)
        log.info("ticket_payment_confirmed")
        return ReconcileResult(ReconcileOutcome.CONFIRMED, ticket)
