from fastapi.testclient import TestClient

from tikoyangu.models import EventStatus, Ticket, TicketStatus

from conftest import auth_header
from test_mpesa_callback import daraja_callback, purchase


def test_purchase_returns_pending_receipt(client, event, gateway):
    res = purchase(client, event)

    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["statusCode"] == 201
    assert body["data"]["status"] == "pending"
    assert body["data"]["checkout_request_id"] == "ws_CO_001"
    assert gateway.calls[0]["phone"] == "254712345678"


def test_purchase_without_phone_is_400(client, db, event, gateway):
    res = purchase(client, event, buyer_phone=None)

    assert res.status_code == 400
    assert res.json()["success"] is False
    assert res.json()["message"] == "buyerPhone and buyerName are required for payment"
    assert gateway.calls == []
    assert db.query(Ticket).count() == 0


def test_purchase_for_archived_event_is_400(client, make_event):
    event = make_event(status=EventStatus.ARCHIVED)
    res = purchase(client, event)
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid event"


def test_gateway_outage_is_502(client, db, event, gateway):
    gateway.fail_with("M-Pesa STK push timed out")
    res = purchase(client, event)

    assert res.status_code == 502
    assert res.json()["message"] == "M-Pesa STK push timed out"
    assert db.query(Ticket).count() == 0


def test_request_validation_uses_envelope(client):
    res = client.post("/tickets/purchase", json={"buyer_name": "Jane"})
    assert res.status_code == 400
    assert res.json()["message"] == "Validation failed"
    assert res.json()["data"]["errors"]


def test_get_ticket_by_buyer_and_owner(client, event, organizer_headers, other_organizer_headers):
    ticket_id = purchase(client, event).json()["data"]["ticket_id"]

    buyer = auth_header(50, "user", "jane@example.com")
    assert client.get(f"/tickets/{ticket_id}", headers=buyer).status_code == 200
    assert client.get(f"/tickets/{ticket_id}", headers=organizer_headers).status_code == 200
    assert client.get(f"/tickets/{ticket_id}", headers=other_organizer_headers).status_code == 403
    assert client.get(f"/tickets/{ticket_id}").status_code in (401, 403)
    assert client.get("/tickets/9999", headers=organizer_headers).status_code == 404


def test_bad_token_is_401(client, event):
    res = client.get("/tickets/1", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401


def test_list_event_tickets(client, event, organizer_headers, other_organizer_headers):
    purchase(client, event)
    purchase(client, event, buyer_name="Otieno")

    res = client.get(f"/tickets/event/{event.id}", headers=organizer_headers)
    assert res.status_code == 200
    assert len(res.json()["data"]) == 2
    assert client.get(f"/tickets/event/{event.id}", headers=other_organizer_headers).status_code == 403

    buyer = auth_header(50, "user", "jane@example.com")
    assert client.get(f"/tickets/event/{event.id}", headers=buyer).status_code == 403


def test_scan_then_use_again_conflicts(client, db, event, gateway, organizer_headers):
    gateway.checkout_ids = ["ws_CO_scan"]
    ticket_id = purchase(client, event).json()["data"]["ticket_id"]
    client.post("/mpesa/callback", json=daraja_callback("ws_CO_scan", 0))
    credential = db.get(Ticket, ticket_id, populate_existing=True).qr_code

    res = client.post("/tickets/scan", json={"credential": credential}, headers=organizer_headers)
    assert res.status_code == 200
    assert res.json()["data"]["status"] == "used"

    res = client.post(f"/tickets/{ticket_id}/use", headers=organizer_headers)
    assert res.status_code == 409


def test_cancel_valid_ticket(client, db, event, gateway, organizer_headers, other_organizer_headers):
    gateway.checkout_ids = ["ws_CO_cancel"]
    ticket_id = purchase(client, event).json()["data"]["ticket_id"]
    client.post("/mpesa/callback", json=daraja_callback("ws_CO_cancel", 0))

    assert client.post(f"/tickets/{ticket_id}/cancel", headers=other_organizer_headers).status_code == 403
    res = client.post(f"/tickets/{ticket_id}/cancel", headers=organizer_headers)
    assert res.status_code == 200
    assert db.get(Ticket, ticket_id, populate_existing=True).status == TicketStatus.CANCELED


def test_lifespan_closes_clients(app, gateway, sms):
    with TestClient(app) as c:
        assert c.get("/root").json() == {"message": "Backend running..."}
        assert not gateway.closed
    assert gateway.closed
    assert sms.closed


def test_huge_price_is_400(client, db, event, gateway):
    res = purchase(client, event, price="1e30")
    assert res.status_code == 400
    assert res.json()["message"] == "price is too large"
    assert gateway.calls == []
    assert db.query(Ticket).count() == 0


def test_pending_ticket_cancel_is_409(client, db, event, organizer_headers):
    ticket_id = purchase(client, event).json()["data"]["ticket_id"]
    res = client.post(f"/tickets/{ticket_id}/cancel", headers=organizer_headers)
    assert res.status_code == 409
    assert db.get(Ticket, ticket_id, populate_existing=True).status == TicketStatus.PENDING


def test_organizer_lists_tickets_across_events(client, make_event, gateway, organizer_headers, other_organizer_headers, admin_headers):
    jazz = make_event()
    beats = make_event(title="Mombasa Beats")
    blues = make_event(title="Kisumu Blues", organizer_id=8)
    for ev in (jazz, beats, blues):
        purchase(client, ev)

    res = client.get("/tickets/organizer", headers=organizer_headers)
    assert res.status_code == 200
    assert sorted(t["event_id"] for t in res.json()["data"]) == sorted([jazz.id, beats.id])

    res = client.get("/tickets/organizer", params={"organizer_id": 8}, headers=admin_headers)
    assert [t["event_id"] for t in res.json()["data"]] == [blues.id]

    assert client.get("/tickets/organizer", params={"organizer_id": 7}, headers=other_organizer_headers).status_code == 403
