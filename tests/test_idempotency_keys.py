from datetime import timedelta
from decimal import Decimal

import pytest

from comanda.core.errors import ValidationError
from comanda.core.timeutils import utcnow
from comanda.models.idempotency_key import IdempotencyKey
from comanda.models.order import Order
from comanda.models.payment import Payment
from comanda.services.idempotency import find_replay, normalize_key
from tests.fixtures_data import HAPPY_PATH_ORDER_PAYLOAD, KITCHEN_VENUE_ID, build_client, headers


def _order_id(client) -> int:
    return client.post("/api/orders", json=HAPPY_PATH_ORDER_PAYLOAD, headers=headers()).json()["id"]


def test_payment_without_key_is_applied_twice():
    client, db = build_client()
    order_id = _order_id(client)
    payload = {"method": "cash", "amount": "5.00"}

    client.post(f"/api/orders/{order_id}/payments", json=payload, headers=headers())
    client.post(f"/api/orders/{order_id}/payments", json=payload, headers=headers())

    order = db.get(Order, order_id)
    db.refresh(order)
    assert db.query(Payment).count() == 2
    assert order.paid_amount == Decimal("10.00")


def test_replayed_payment_with_same_key_is_applied_once():
    client, db = build_client()
    order_id = _order_id(client)
    payload = {"method": "cash", "amount": "5.00"}
    replay_headers = headers(**{"Idempotency-Key": "fila-offline-1"})

    first = client.post(f"/api/orders/{order_id}/payments", json=payload, headers=replay_headers)
    second = client.post(f"/api/orders/{order_id}/payments", json=payload, headers=replay_headers)

    assert first.status_code == second.status_code == 201
    assert first.json()["payment"]["id"] == second.json()["payment"]["id"]
    assert db.query(Payment).count() == 1
    assert second.json()["order"]["paid_amount"] == "5.00"


def test_replayed_create_order_returns_original():
    client, db = build_client()
    replay_headers = headers(**{"Idempotency-Key": "pedido-abc"})

    first = client.post("/api/orders", json=HAPPY_PATH_ORDER_PAYLOAD, headers=replay_headers)
    second = client.post("/api/orders", json=HAPPY_PATH_ORDER_PAYLOAD, headers=replay_headers)

    assert first.json()["id"] == second.json()["id"]
    assert db.query(Order).count() == 1


def test_replay_after_order_closed_still_returns_original_payment():
    client, db = build_client()
    order_id = _order_id(client)
    replay_headers = headers(**{"Idempotency-Key": "quita-tudo"})
    payload = {"method": "pix", "amount": "21.00"}

    first = client.post(f"/api/orders/{order_id}/payments", json=payload, headers=replay_headers)
    second = client.post(f"/api/orders/{order_id}/payments", json=payload, headers=replay_headers)

    assert first.json()["order"]["status"] == "closed"
    assert second.status_code == 201
    assert second.json()["payment"]["id"] == first.json()["payment"]["id"]


def test_key_reused_for_other_operation_is_rejected():
    client, _db = build_client()
    order_id = _order_id(client)
    shared = headers(**{"Idempotency-Key": "mesma-chave"})

    client.post(f"/api/orders/{order_id}/payments", json={"method": "cash", "amount": "1.00"}, headers=shared)
    response = client.post(f"/api/orders/{order_id}/cancel", headers=shared)

    assert response.status_code == 400


def test_replayed_ticket_advance_moves_only_one_step():
    client, _db = build_client()
    order = client.post("/api/orders", json=HAPPY_PATH_ORDER_PAYLOAD, headers=headers()).json()
    ticket_id = order["kitchen_ticket"]["id"]
    replay_headers = headers(**{"Idempotency-Key": "avanca-1"})

    client.post(f"/api/kitchen/tickets/{ticket_id}/advance", headers=replay_headers)
    second = client.post(f"/api/kitchen/tickets/{ticket_id}/advance", headers=replay_headers)

    assert second.status_code == 200
    assert second.json()["status"] == "preparing"


def test_expired_key_is_forgotten():
    _client, db = build_client()
    db.add(
        IdempotencyKey(
            venue_id=KITCHEN_VENUE_ID,
            key="antiga",
            operation="record_payment",
            entity_id=1,
            created_at=utcnow() - timedelta(days=3),
        )
    )
    db.commit()

    assert find_replay(db, venue_id=KITCHEN_VENUE_ID, key="antiga", operation="record_payment") is None
    db.commit()
    assert db.query(IdempotencyKey).count() == 0


def test_normalize_key():
    assert normalize_key(None) is None
    assert normalize_key("   ") is None
    assert normalize_key(" abc ") == "abc"
    with pytest.raises(ValidationError):
        normalize_key("x" * 200)
