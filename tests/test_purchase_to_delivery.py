"""Purchase, pay, duplicate callback: the ticket is issued exactly once."""

from tikoyangu.models import Ticket, TicketStatus

from test_mpesa_callback import ACK, daraja_callback


def test_jane_buys_a_ticket_for_event_14(client, db, make_event, gateway, email, sms):
    make_event(id=14)
    gateway.checkout_ids = ["ws_CO_123"]

    res = client.post("/tickets/purchase", json={
        "event_id": 14,
        "buyer_name": "Jane",
        "buyer_phone": "0712345678",
        "buyer_email": "jane@example.com",
        "price": 1000.00,
    })
    receipt = res.json()["data"]
    assert receipt["status"] == "pending"
    assert receipt["checkout_request_id"] == "ws_CO_123"

    assert client.post("/mpesa/callback", json=daraja_callback("ws_CO_123", 0)).json() == ACK
    ticket = db.get(Ticket, receipt["ticket_id"], populate_existing=True)
    assert ticket.status == TicketStatus.VALID
    credential = ticket.qr_code
    assert credential
    assert len(email.sent) == 1
    assert len(sms.sent) == 1

    assert client.post("/mpesa/callback", json=daraja_callback("ws_CO_123", 0)).json() == ACK
    ticket = db.get(Ticket, receipt["ticket_id"], populate_existing=True)
    assert ticket.status == TicketStatus.VALID
    assert ticket.qr_code == credential
    assert len(email.sent) == 1
    assert len(sms.sent) == 1
