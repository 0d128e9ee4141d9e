import threading
from decimal import Decimal

from tikoyangu.database import SessionLocal
from tikoyangu.models import Ticket, TicketStatus
from tikoyangu.services.reconciler import ReconcileOutcome, WebhookReconciler
from tikoyangu.services.ticket_store import SYSTEM_RECONCILER, TicketStore


def reserve(db, event, checkout_id):
    return TicketStore(db).create_pending(
        event_id=event.id,
        buyer_name="Jane",
        buyer_email="jane@example.com",
        buyer_phone="254712345678",
        ticket_type="regular",
        price=Decimal("1000.00"),
        checkout_request_id=checkout_id,
        merchant_request_id="MR-1",
        actor="buyer:254712345678",
    )


class Recorder:

    def __init__(self):
        self.confirmed = []
        self.lock = threading.Lock()

    def __call__(self, confirmation):
        with self.lock:
            self.confirmed.append(confirmation)


def run_now(fn, *args):
    fn(*args)


def test_success_confirms_and_schedules_once(db, event):
    ticket = reserve(db, event, "ws_CO_123")
    recorder = Recorder()
    reconciler = WebhookReconciler(db, on_confirmed=recorder, schedule=run_now)

    first = reconciler.reconcile("ws_CO_123", 0, raw_payload={"ResultCode": 0})
    second = reconciler.reconcile("ws_CO_123", 0, raw_payload={"ResultCode": 0})

    assert first.outcome == ReconcileOutcome.CONFIRMED
    assert second.outcome == ReconcileOutcome.DUPLICATE
    assert len(recorder.confirmed) == 1

    ticket = TicketStore(db).get(ticket.id)
    assert ticket.status == TicketStatus.VALID
    assert ticket.qr_code
    assert ticket.paid_at is not None
    assert ticket.mpesa_result_code == 0
    assert ticket.payment_callback == {"ResultCode": 0}
    assert ticket.last_modified_by == SYSTEM_RECONCILER

    snapshot = recorder.confirmed[0]
    assert snapshot.ticket_id == ticket.id
    assert snapshot.credential == ticket.qr_code
    assert snapshot.event_title == "Nairobi Jazz Night"


def test_failure_cancels_without_side_effects(db, event):
    ticket = reserve(db, event, "ws_CO_fail")
    recorder = Recorder()
    result = WebhookReconciler(db, recorder, run_now).reconcile("ws_CO_fail", 1032)

    assert result.outcome == ReconcileOutcome.CANCELED
    assert recorder.confirmed == []
    ticket = TicketStore(db).get(ticket.id)
    assert ticket.status == TicketStatus.CANCELED
    assert ticket.qr_code is None
    assert ticket.mpesa_result_code == 1032


def test_success_after_cancellation_is_ignored(db, event):
    ticket = reserve(db, event, "ws_CO_late")
    recorder = Recorder()
    reconciler = WebhookReconciler(db, recorder, run_now)

    reconciler.reconcile("ws_CO_late", 1)
    result = reconciler.reconcile("ws_CO_late", 0)

    assert result.outcome == ReconcileOutcome.DUPLICATE
    assert recorder.confirmed == []
    assert TicketStore(db).get(ticket.id).status == TicketStatus.CANCELED


def test_failure_after_success_is_ignored(db, event):
    ticket = reserve(db, event, "ws_CO_ok")
    reconciler = WebhookReconciler(db, Recorder(), run_now)

    reconciler.reconcile("ws_CO_ok", 0)
    credential = TicketStore(db).get(ticket.id).qr_code
    result = reconciler.reconcile("ws_CO_ok", 2001)

    assert result.outcome == ReconcileOutcome.DUPLICATE
    ticket = TicketStore(db).get(ticket.id)
    assert ticket.status == TicketStatus.VALID
    assert ticket.qr_code == credential


def test_unknown_checkout_id(db):
    result = WebhookReconciler(db, Recorder(), run_now).reconcile("ws_CO_missing", 0)
    assert result.outcome == ReconcileOutcome.NOT_FOUND
    assert result.ticket is None


def test_credentials_are_unique(db, event):
    reconciler = WebhookReconciler(db, Recorder(), run_now)
    for n in range(3):
        reserve(db, event, f"ws_CO_u{n}")
        reconciler.reconcile(f"ws_CO_u{n}", 0)

    credentials = [t.qr_code for t in db.query(Ticket).all()]
    assert len(set(credentials)) == 3


def _reconcile_in_thread(checkout_id, result_code, recorder, outcomes, barrier):
    db = SessionLocal()
    try:
        barrier.wait()
        result = WebhookReconciler(db, recorder, run_now).reconcile(checkout_id, result_code)
        outcomes.append(result.outcome)
    finally:
        db.close()


def test_concurrent_duplicates_apply_once(db, event):
    ticket = reserve(db, event, "ws_CO_race")
    recorder = Recorder()
    outcomes = []
    barrier = threading.Barrier(4)
    threads = [
        threading.Thread(target=_reconcile_in_thread, args=("ws_CO_race", 0, recorder, outcomes, barrier))
        for _ in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count(ReconcileOutcome.CONFIRMED) == 1
    assert outcomes.count(ReconcileOutcome.DUPLICATE) == 3
    assert len(recorder.confirmed) == 1
    assert TicketStore(db).get(ticket.id).status == TicketStatus.VALID
    assert len(TicketStore(db).transitions_for(ticket.id)) == 2


def test_concurrent_callbacks_for_different_tickets(db, event):
    paid = reserve(db, event, "ws_CO_paid")
    failed = reserve(db, event, "ws_CO_failed")
    recorder = Recorder()
    outcomes = []
    barrier = threading.Barrier(2)
    threads = [
        threading.Thread(target=_reconcile_in_thread, args=("ws_CO_paid", 0, recorder, outcomes, barrier)),
        threading.Thread(target=_reconcile_in_thread, args=("ws_CO_failed", 1037, recorder, outcomes, barrier)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    store = TicketStore(db)
    assert store.get(paid.id).status == TicketStatus.VALID
    assert store.get(failed.id).status == TicketStatus.CANCELED
    assert [c.ticket_id for c in recorder.confirmed] == [paid.id]
