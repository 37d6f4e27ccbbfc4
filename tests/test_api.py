"""HTTP smoke tests through the FastAPI application."""

import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from clubpoints.core.database import get_db
from clubpoints.main import create_app
from clubpoints.services import notification_service
from clubpoints.utils.datetime import utcnow


class RecordingDispatcher:
    def __init__(self):
        self.sent = []

    def send(self, member_id, event, data):
        self.sent.append((member_id, event, data))


@pytest.fixture
def dispatcher():
    previous = notification_service.get_dispatcher()
    recorder = RecordingDispatcher()
    notification_service.set_dispatcher(recorder)
    yield recorder
    notification_service.set_dispatcher(previous)


@pytest.fixture
def client(session_factory):
    app = create_app()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client


def _as(member) -> dict:
    return {"X-User-Id": str(member.member_id)}


def test_health(client):
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_identity_header_required(client):
    assert client.get("/api/v1/points/balance").status_code == 422


def test_transfer_and_history(client, make_member, dispatcher):
    alice = make_member("Alice", balance=100)
    bob = make_member("Bob")

    response = client.post(
        "/api/v1/points/transfer",
        json={"to_member_id": str(bob.member_id), "amount": 30},
        headers=_as(alice),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["sender_balance"] == 70
    assert body["recipient_balance"] == 30
    assert client.get("/api/v1/points/balance", headers=_as(bob)).json()["balance"] == 30
    history = client.get("/api/v1/points/history", headers=_as(alice)).json()
    assert [entry["category"] for entry in history] == ["TRANSFER_OUT", "ADJUSTMENT"]
    assert dispatcher.sent[0][1] == notification_service.POINTS_RECEIVED
    assert dispatcher.sent[0][2]["from_name"] == "Alice"


def test_transfer_overdraft_is_400(client, make_member):
    alice = make_member("Alice", balance=10)
    bob = make_member("Bob")

    response = client.post(
        "/api/v1/points/transfer",
        json={"to_member_id": str(bob.member_id), "amount": 11},
        headers=_as(alice),
    )

    assert response.status_code == 400
    assert "Insufficient balance" in response.json()["detail"]


def test_admin_adjust_and_summary(client, make_member):
    member = make_member("Ana")
    admin = make_member("Admin")

    response = client.post(
        "/api/v1/points/adjust",
        json={
            "member_id": str(member.member_id),
            "amount": 25,
            "reason": "Volunteer bonus",
            "admin_id": str(admin.member_id),
        },
    )

    assert response.status_code == 200
    assert response.json()["balance"]["balance"] == 25
    assert client.get("/api/v1/points/admin/summary").json() == {"total_points": 25, "total_accounts": 1}


def test_event_checkin_flow(client, make_member, dispatcher):
    organiser = make_member("Organiser")
    member = make_member("Ana")
    now = utcnow()

    created = client.post(
        "/api/v1/events",
        json={
            "name": "Open lab",
            "start_at": (now - timedelta(minutes=1)).isoformat(),
            "end_at": (now + timedelta(hours=1)).isoformat(),
            "total_points": 20,
            "status": "ACTIVE",
        },
        headers=_as(organiser),
    )
    assert created.status_code == 201
    event_id = created.json()["event_id"]
    assert "qr_secret" not in created.json()

    display = client.get(f"/api/v1/events/{event_id}/display")
    assert display.status_code == 200

    checkin = client.post(
        "/api/v1/events/checkin",
        json={"qr_payload": display.json()["qr_payload"]},
        headers=_as(member),
    )
    assert checkin.status_code == 201
    assert checkin.json()["points_awarded"] == 20

    again = client.post(
        "/api/v1/events/checkin",
        json={"qr_payload": display.json()["qr_payload"]},
        headers=_as(member),
    )
    assert again.status_code == 409

    status = client.get(f"/api/v1/events/{event_id}/checkin-status", headers=_as(member)).json()
    assert status["checkin_count"] == 1
    assert status["can_checkin"] is False
    assert client.get("/api/v1/points/balance", headers=_as(member)).json()["balance"] == 20
    assert dispatcher.sent[-1][1] == notification_service.CHECKIN_AWARDED


def test_draft_event_has_no_display(client, make_member):
    organiser = make_member("Organiser")
    now = utcnow()
    created = client.post(
        "/api/v1/events",
        json={
            "name": "Planning",
            "start_at": now.isoformat(),
            "end_at": (now + timedelta(hours=1)).isoformat(),
            "total_points": 5,
        },
        headers=_as(organiser),
    )

    assert created.json()["status"] == "DRAFT"
    assert client.get(f"/api/v1/events/{created.json()['event_id']}/display").status_code == 400


def test_kiosk_payment_flow(client, make_member):
    member = make_member("Ana", balance=30)

    kiosk = client.post("/api/v1/kiosks", json={"name": "Cafeteria"}).json()
    product = client.post(
        f"/api/v1/kiosks/{kiosk['kiosk_id']}/products",
        json={"name": "Sandwich", "points_price": 50, "stock": 3},
    ).json()
    order = client.post(
        f"/api/v1/kiosks/{kiosk['kiosk_id']}/orders",
        json={"items": [{"product_id": product["product_id"], "quantity": 1}]},
    )
    assert order.status_code == 201
    payload = order.json()["qr_payload"]

    preview = client.post("/api/v1/kiosks/payments/preview", json={"qr_payload": payload})
    assert preview.json()["total_points"] == 50

    refused = client.post("/api/v1/kiosks/payments", json={"qr_payload": payload}, headers=_as(member))
    assert refused.status_code == 400

    status = client.get(f"/api/v1/kiosks/{kiosk['kiosk_id']}/orders/{order.json()['order_id']}")
    assert status.json()["status"] == "PENDING"


def test_duplicate_kiosk_name(client):
    assert client.post("/api/v1/kiosks", json={"name": "Library"}).status_code == 201
    assert client.post("/api/v1/kiosks", json={"name": "Library"}).status_code == 409


def test_store_checkout_flow(client, make_member):
    member = make_member("Ana", balance=100)
    item = client.post("/api/v1/store/items", json={"name": "Mug", "points_price": 15, "stock": 4}).json()

    cart = client.post(
        "/api/v1/store/cart/items",
        json={"store_item_id": item["store_item_id"], "quantity": 2},
        headers=_as(member),
    )
    assert cart.status_code == 201
    assert cart.json()["total_points"] == 30

    order = client.post("/api/v1/store/checkout", headers=_as(member))
    assert order.status_code == 201
    assert order.json()["status"] == "COMPLETED"

    assert client.get("/api/v1/store/cart", headers=_as(member)).json()["items"] == []
    assert client.get("/api/v1/points/balance", headers=_as(member)).json()["balance"] == 70
    assert len(client.get("/api/v1/store/orders", headers=_as(member)).json()) == 1


def test_adjust_with_unknown_admin_is_404(client, make_member):
    member = make_member("Ana")

    response = client.post(
        "/api/v1/points/adjust",
        json={
            "member_id": str(member.member_id),
            "amount": 25,
            "reason": "Volunteer bonus",
            "admin_id": str(uuid.uuid4()),
        },
    )

    assert response.status_code == 404
    assert client.get("/api/v1/points/admin/summary").json() == {"total_points": 0, "total_accounts": 0}


def test_event_with_unknown_creator_is_404(client):
    now = utcnow()

    response = client.post(
        "/api/v1/events",
        json={
            "name": "Ghost meetup",
            "start_at": now.isoformat(),
            "end_at": (now + timedelta(hours=1)).isoformat(),
            "total_points": 5,
        },
        headers={"X-User-Id": str(uuid.uuid4())},
    )

    assert response.status_code == 404


def test_closing_a_kiosk(client):
    kiosk = client.post("/api/v1/kiosks", json={"name": "Bookshop"}).json()

    closed = client.post(f"/api/v1/kiosks/{kiosk['kiosk_id']}/toggle")

    assert closed.status_code == 200
    assert closed.json()["is_active"] is False
    assert client.get(f"/api/v1/kiosks/{kiosk['kiosk_id']}/display").status_code == 400
    assert client.post(f"/api/v1/kiosks/{uuid.uuid4()}/toggle").status_code == 404


def test_unknown_event_is_404(client):
    response = client.get(f"/api/v1/events/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json() == {"detail": "Event not found"}
