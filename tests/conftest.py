import os
import tempfile
from datetime import date, time
from decimal import Decimal

# settings are read at import time
_DB_DIR = tempfile.mkdtemp(prefix="tikoyangu-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"
os.environ["PENDING_SWEEP_INTERVAL_MINUTES"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from tikoyangu.core.errors import PaymentGatewayUnavailable
from tikoyangu.core.documents import TicketDocumentRenderer
from tikoyangu.core.email import EmailChannel
from tikoyangu.core.mpesa import PaymentGateway, StkPushResult
from tikoyangu.core.security import create_access_token
from tikoyangu.core.sms import SmsChannel
from tikoyangu.database import SessionLocal, db_engine
from tikoyangu.main import create_app
from tikoyangu.models import Event, EventStatus
from tikoyangu.models.base import Base
from tikoyangu.services.confirmation import ConfirmationPipeline


class FakeGateway(PaymentGateway):

    def __init__(self):
        self.calls = []
        self.checkout_ids = []
        self.error = None
        self.closed = False

    def stk_push(self, amount, phone, account_reference, transaction_desc):
        self.calls.append({
            "amount": amount,
            "phone": phone,
            "account_reference": account_reference,
            "transaction_desc": transaction_desc,
        })
        if self.error is not None:
            raise self.error
        n = len(self.calls)
        checkout_id = self.checkout_ids.pop(0) if self.checkout_ids else f"ws_CO_{n:03d}"
        return StkPushResult(
            merchant_request_id=f"MR-{n:03d}",
            checkout_request_id=checkout_id,
            response_code="0",
            response_description="Success. Request accepted for processing",
            customer_message="Success. Request accepted for processing",
        )

    def fail_with(self, message="M-Pesa STK push timed out"):
        self.error = PaymentGatewayUnavailable(message)

    def close(self):
        self.closed = True


class FakeEmail(EmailChannel):

    def __init__(self):
        self.sent = []
        self.error = None

    def send(self, to, subject, body, attachment=None):
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "body": body, "attachment": attachment})


class FakeSms(SmsChannel):

    def __init__(self):
        self.sent = []
        self.error = None
        self.closed = False

    def send(self, to, body):
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "body": body})

    def close(self):
        self.closed = True


class BrokenRenderer(TicketDocumentRenderer):

    def render_pdf(self, ticket):
        raise OSError("font cache unavailable")


class Inline:
    """Stands in for BackgroundTasks.add_task: runs the job now and remembers it."""

    def __init__(self):
        self.jobs = []

    def __call__(self, fn, *args, **kwargs):
        self.jobs.append((fn, args))
        return fn(*args, **kwargs)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def documents():
    return TicketDocumentRenderer("Tikoyangu", "KES")


@pytest.fixture
def pipeline(email, sms, documents):
    return ConfirmationPipeline(email=email, sms=sms, documents=documents)


@pytest.fixture
def inline():
    return Inline()


@pytest.fixture
def make_event(db):
    def _make_event(**overrides):
        values = dict(
            organizer_id=7,
            title="Nairobi Jazz Night",
            venue="Carnivore Grounds",
            location="Nairobi",
            start_date=date(2026, 12, 5),
            end_date=date(2026, 12, 5),
            start_time=time(18, 0),
            end_time=time(23, 30),
            regular_price=Decimal("1000.00"),
            vip_price=Decimal("2500.00"),
            status=EventStatus.ACTIVE,
        )
        values.update(overrides)
        event = Event(**values)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event
    return _make_event


@pytest.fixture
def event(make_event):
    return make_event()


def auth_header(user_id, role, email=None):
    token = create_access_token({"sub": email or f"user{user_id}@example.com", "role": role, "user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth_header(1, "admin", "admin@tikoyangu.co.ke")


@pytest.fixture
def organizer_headers():
    # owns the default event
    return auth_header(7, "organizer", "organizer@example.com")


@pytest.fixture
def other_organizer_headers():
    return auth_header(8, "organizer", "someone@example.com")


@pytest.fixture
def app(gateway, email, sms, documents):
    return create_app(gateway=gateway, email=email, sms=sms, documents=documents)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
