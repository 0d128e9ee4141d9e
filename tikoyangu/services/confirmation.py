"""Post-payment side effects.

Runs after the ``pending -> valid`` transition has committed, off the
callback's response path. Payment success is already the recorded fact, so
nothing here can undo it: every channel is attempted on its own and its
failure is logged, not raised.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, Optional

import structlog

from tikoyangu.core.documents import TicketDocumentRenderer
from tikoyangu.core.email import Attachment, EmailChannel
from tikoyangu.core.sms import SmsChannel
from tikoyangu.schemas.ticket import BuyerNotice, TicketConfirmation

logger = structlog.get_logger(__name__)


class ChannelOutcome(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass
class ConfirmationReport:
    ticket_id: int
    document_rendered: bool = False
    channels: Dict[str, ChannelOutcome] = field(default_factory=dict)


class ConfirmationPipeline:

    def __init__(self, email: EmailChannel, sms: SmsChannel, documents: TicketDocumentRenderer):
        self.email = email
        self.sms = sms
        self.documents = documents

    def confirm(self, ticket: TicketConfirmation) -> ConfirmationReport:
        report = ConfirmationReport(ticket_id=ticket.ticket_id)
        log = logger.bind(ticket_id=ticket.ticket_id)

        document: Optional[bytes] = None
        try:
            document = self.documents.render_pdf(ticket)
            report.document_rendered = True
        except Exception:
            log.exception("ticket_document_failed")

        report.channels["email"] = self._send_confirmation_email(ticket, document, log)
        report.channels["sms"] = self._send_confirmation_sms(ticket, log)

        log.info("ticket_confirmation_dispatched", **{k: v.value for k, v in report.channels.items()})
        return report

    def _send_confirmation_email(self, ticket: TicketConfirmation, document: Optional[bytes], log) -> ChannelOutcome:
        if not ticket.buyer_email:
            log.info("confirmation_email_skipped", reason="no email on file")
            return ChannelOutcome.SKIPPED
        if document is None:
            log.warning("confirmation_email_aborted", reason="ticket document unavailable")
            return ChannelOutcome.ABORTED

        subject = f"Your Ticket for {ticket.event_title}"
        body = self._email_body(ticket)
        attachment = Attachment(filename=self.documents.filename(ticket), content=document)
        try:
            self.email.send(ticket.buyer_email, subject, body, attachment)
        except Exception:
            log.exception("confirmation_email_failed", to=ticket.buyer_email)
            return ChannelOutcome.FAILED
        return ChannelOutcome.SENT

    def _send_confirmation_sms(self, ticket: TicketConfirmation, log) -> ChannelOutcome:
        if not ticket.buyer_phone:
            log.info("confirmation_sms_skipped", reason="no phone on file")
            return ChannelOutcome.SKIPPED

        body = f"Your ticket for {ticket.event_title} (ID: {ticket.ticket_id}) is confirmed!"
        try:
            self.sms.send(ticket.buyer_phone, body)
        except Exception:
            log.exception("confirmation_sms_failed", to=ticket.buyer_phone)
            return ChannelOutcome.FAILED
        return ChannelOutcome.SENT

    def notify_buyer(self, notice: BuyerNotice) -> Dict[str, ChannelOutcome]:
        """Best-effort plain notice (refunds, status changes) on every channel we have a contact for."""
        log = logger.bind(ticket_id=notice.ticket_id)
        outcomes: Dict[str, ChannelOutcome] = {}

        if notice.buyer_email:
            try:
                self.email.send(notice.buyer_email, notice.subject, notice.message)
                outcomes["email"] = ChannelOutcome.SENT
            except Exception:
                log.exception("buyer_notice_email_failed", subject=notice.subject)
                outcomes["email"] = ChannelOutcome.FAILED
        else:
            outcomes["email"] = ChannelOutcome.SKIPPED

        if notice.buyer_phone:
            try:
                self.sms.send(notice.buyer_phone, notice.message)
                outcomes["sms"] = ChannelOutcome.SENT
            except Exception:
                log.exception("buyer_notice_sms_failed", subject=notice.subject)
                outcomes["sms"] = ChannelOutcome.FAILED
        else:
            outcomes["sms"] = ChannelOutcome.SKIPPED

        return outcomes

    def _email_body(self, ticket: TicketConfirmation) -> str:
        when = ticket.event_start_date.strftime("%A, %d %B %Y") if ticket.event_start_date else "TBA"
        venue = ", ".join(p for p in (ticket.event_venue, ticket.event_location) if p) or "TBA"
        return f'''
Hello {ticket.buyer_name},

Thank you for purchasing a ticket! Your payment has been received.

Event: {ticket.event_title}
Venue: {venue}
Date: {when}
Ticket type: {ticket.ticket_type}
Price: {self.documents.currency} {ticket.price:,.2f}
Ticket ID: {ticket.ticket_id}

Your ticket is attached as a PDF. Present the QR code at the venue entrance.

Best regards,
Team {self.documents.brand_name}
'''
