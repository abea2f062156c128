import threading
from decimal import Decimal

from comanda.core.errors import StateConflictError
from comanda.models.order import Order
from comanda.models.payment import Payment
from comanda.models.venue import Venue
from comanda.services.capabilities import VenueCapabilities
from comanda.services.orders import create_order
from comanda.services.payments import record_payment
from tests.fixtures_data import (
    BAR_PRODUCT,
    BAR_VENUE_ID,
    CASHIER_ID,
    build_session_factory,
)


def _open_order(factory, qty: int) -> int:
    db = factory()
    try:
        capabilities = VenueCapabilities.from_venue(db.get(Venue, BAR_VENUE_ID))
        order = create_order(
            db,
            capabilities=capabilities,
            items=[{"product_id": BAR_PRODUCT["id"], "qty": qty}],
            requested_by=CASHIER_ID,
        )
        return order.id
    finally:
        db.close()


def _pay_concurrently(factory, order_id: int, amounts: list[str]) -> list[Exception]:
    barrier = threading.Barrier(len(amounts))
    errors: list[Exception] = []

    def _pay(amount: str) -> None:
        db = factory()
        try:
            barrier.wait()
            record_payment(
                db,
                venue_id=BAR_VENUE_ID,
                order_id=order_id,
                method="cash",
                amount=amount,
                received_by=CASHIER_ID,
            )
        except Exception as exc:  # coletado para o assert
            errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=_pay, args=(amount,)) for amount in amounts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


def test_concurrent_partial_payments_sum_without_lost_update(tmp_path):
    factory = build_session_factory(f"sqlite+pysqlite:///{tmp_path}/concurrency.db")
    order_id = _open_order(factory, qty=10)  # 99.00
    amounts = ["1.00", "2.00", "3.00", "4.00", "5.00", "6.00"]

    errors = _pay_concurrently(factory, order_id, amounts)

    db = factory()
    order = db.get(Order, order_id)
    assert errors == []
    assert db.query(Payment).filter(Payment.order_id == order_id).count() == len(amounts)
    assert order.paid_amount == Decimal("21.00")
    assert order.payment_status == "partial"
    assert order.status == "open"


def test_concurrent_payments_crossing_total_close_exactly_once(tmp_path):
    factory = build_session_factory(f"sqlite+pysqlite:///{tmp_path}/closing.db")
    order_id = _open_order(factory, qty=1)  # 9.90
    amounts = ["5.00", "5.00", "5.00", "5.00"]

    errors = _pay_concurrently(factory, order_id, amounts)

    db = factory()
    order = db.get(Order, order_id)
    accepted = db.query(Payment).filter(Payment.order_id == order_id).count()
    assert all(isinstance(exc, StateConflictError) for exc in errors)
    assert accepted + len(errors) == len(amounts)
    assert accepted == 2
    assert order.paid_amount == Decimal("10.00")
    assert order.payment_status == "paid"
    assert order.status == "closed"
