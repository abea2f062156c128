from unittest.mock import patch

import pytest

from comanda.models.audit_log import AuditLog
from comanda.models.kitchen_ticket import KitchenTicket
from comanda.models.order import Order
from comanda.models.order_item import OrderItem
from comanda.models.venue import Venue
from comanda.services.capabilities import VenueCapabilities
from comanda.services.orders import create_order
from tests.fixtures_data import (
    CASHIER_ID,
    HAPPY_PATH_ORDER_PAYLOAD,
    KITCHEN_VENUE_ID,
    build_client,
    build_session_factory,
    headers,
)


def _capabilities(db) -> VenueCapabilities:
    return VenueCapabilities.from_venue(db.get(Venue, KITCHEN_VENUE_ID))


def test_ticket_failure_rolls_back_order_and_items(tmp_path):
    factory = build_session_factory(f"sqlite+pysqlite:///{tmp_path}/atomicity.db")
    db = factory()

    with (
        patch("comanda.services.orders.create_kitchen_ticket", side_effect=RuntimeError("falha no ticket")),
        patch("comanda.services.orders.emit_order_created") as emit_created,
    ):
        with pytest.raises(RuntimeError):
            create_order(
                db,
                capabilities=_capabilities(db),
                items=HAPPY_PATH_ORDER_PAYLOAD["items"],
                requested_by=CASHIER_ID,
            )

    check = factory()
    assert check.query(Order).count() == 0
    assert check.query(OrderItem).count() == 0
    assert check.query(KitchenTicket).count() == 0
    assert check.query(AuditLog).count() == 0
    emit_created.assert_not_called()


def test_ticket_failure_surfaces_as_generic_500():
    client, db = build_client()

    with patch("comanda.services.orders.create_kitchen_ticket", side_effect=RuntimeError("disk full")):
        response = client.post("/api/orders", json=HAPPY_PATH_ORDER_PAYLOAD, headers=headers())

    assert response.status_code == 500
    assert "disk full" not in response.text
    assert db.query(Order).count() == 0


def test_order_created_event_only_after_commit(tmp_path):
    factory = build_session_factory(f"sqlite+pysqlite:///{tmp_path}/events.db")
    db = factory()
    seen = []

    def _count_from_other_session(order):
        # outra conexão já enxerga a comanda
        other = factory()
        try:
            seen.append(other.query(Order).filter(Order.id == order.id).count())
        finally:
            other.close()

    with patch("comanda.services.orders.emit_order_created", side_effect=_count_from_other_session):
        create_order(
            db,
            capabilities=_capabilities(db),
            items=HAPPY_PATH_ORDER_PAYLOAD["items"],
            requested_by=CASHIER_ID,
        )

    assert seen == [1]
