from __future__ import annotations

import logging
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any, List

from sqlalchemy import update
from sqlalchemy.orm import Session

from comanda.core.errors import DomainError, NotFoundError, StateConflictError, ValidationError
from comanda.core.timeutils import utcnow
from comanda.models.order import Order
from comanda.models.payment import PAYMENT_METHODS, Payment
from comanda.services.audit import log_action
from comanda.services.idempotency import commit_or_replay, find_replay, normalize_key, remember
from comanda.services.order_events import emit_order_paid, emit_order_updated

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
OPERATION = "record_payment"

PAYMENT_METHOD_ALIASES = {
    "cartao": "card",
    "card": "card",
    "credito": "card",
    "debito": "card",
    "pix": "pix",
    "dinheiro": "cash",
    "cash": "cash",
}


def _strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join([char for char in normalized if not unicodedata.combining(char)])


def normalize_payment_method(method: str | None) -> str:
    if not method:
        raise ValidationError("Forma de pagamento obrigatória")
    lowered = _strip_accents(str(method).strip().lower())
    normalized = PAYMENT_METHOD_ALIASES.get(lowered, lowered)
    if normalized not in PAYMENT_METHODS:
        raise ValidationError(f"Forma de pagamento inválida: {method}")
    return normalized


def parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError("Valor inválido") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Valor do pagamento deve ser maior que zero")
    if amount != amount.quantize(CENTS):
        raise ValidationError("Valor do pagamento aceita no máximo 2 casas decimais")
    return amount.quantize(CENTS)


def derive_payment_status(paid_amount: Decimal, total_amount: Decimal) -> str:
    paid = Decimal(paid_amount or 0)
    if paid >= Decimal(total_amount or 0):
        return "paid"
    if paid == 0:
        return "unpaid"
    return "partial"


def apply_payment(
    db: Session,
    order: Order,
    *,
    method: str,
    amount: Decimal,
    received_by: int,
) -> Payment:
    """Lança o pagamento e atualiza o agregado, sem commit.

    O incremento é feito no próprio UPDATE (paid_amount = paid_amount + x),
    condicionado a status='open', então pagamentos concorrentes na mesma
    comanda são serializados pelo lock de linha do banco.
    """
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == "open")
        .values(paid_amount=Order.paid_amount + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StateConflictError("Comanda não está aberta para pagamento")

    payment = Payment(
        order_id=order.id,
        method=method,
        amount=amount,
        received_by=received_by,
        received_at=utcnow(),
    )
    db.add(payment)
    db.flush()

    db.refresh(order)
    new_status = derive_payment_status(order.paid_amount, order.total_amount)
    order.payment_status = new_status
    if new_status == "paid":
        order.status = "closed"
        order.closed_at = utcnow()
    db.flush()

    logger.info(
        "Payment recorded order_id=%s payment_id=%s method=%s amount=%s paid_amount=%s payment_status=%s",
        order.id,
        payment.id,
        method,
        amount,
        order.paid_amount,
        new_status,
    )
    return payment


def _get_order(db: Session, *, venue_id: int, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.venue_id == venue_id).first()
    if not order:
        raise NotFoundError("Comanda não encontrada")
    return order


def record_payment(
    db: Session,
    *,
    venue_id: int,
    order_id: int,
    method: str,
    amount: Any,
    received_by: int,
    idempotency_key: str | None = None,
) -> Payment:
    method = normalize_payment_method(method)
    amount = parse_amount(amount)
    key = normalize_key(idempotency_key)

    try:
        replay_id = find_replay(db, venue_id=venue_id, key=key, operation=OPERATION)
        if replay_id is not None:
            db.commit()
            return db.get(Payment, replay_id)

        order = _get_order(db, venue_id=venue_id, order_id=order_id)
        if order.status != "open":
            raise StateConflictError(f"Não é possível registrar pagamento em comanda {order.status}")
        previous_status = order.status

        payment = apply_payment(db, order, method=method, amount=amount, received_by=received_by)
        log_action(
            db,
            venue_id=venue_id,
            user_id=received_by,
            action="record_payment",
            entity_type="order",
            entity_id=order.id,
            meta={
                "payment_id": payment.id,
                "method": method,
                "amount": str(amount),
                "payment_status": order.payment_status,
            },
        )
        remember(db, venue_id=venue_id, key=key, operation=OPERATION, entity_id=payment.id)
        replay_id = commit_or_replay(db, venue_id=venue_id, key=key, operation=OPERATION)
    except DomainError as exc:
        db.rollback()
        logger.warning("Payment rejected order_id=%s reason=%s", order_id, exc.detail)
        raise
    except Exception:
        db.rollback()
        logger.exception("Payment failed order_id=%s", order_id)
        raise

    if replay_id is not None:
        return db.get(Payment, replay_id)

    db.refresh(order)
    db.refresh(payment)
    if order.payment_status == "paid":
        emit_order_paid(order, previous_status=previous_status)
    else:
        emit_order_updated(order, previous_status=previous_status)
    return payment


def list_payments(db: Session, *, venue_id: int, order_id: int) -> List[Payment]:
    order = _get_order(db, venue_id=venue_id, order_id=order_id)
    return (
        db.query(Payment)
        .filter(Payment.order_id == order.id)
        .order_by(Payment.id.asc())
        .all()
    )
