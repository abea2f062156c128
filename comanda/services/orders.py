from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session, selectinload

from comanda.core.errors import DomainError, NotFoundError, StateConflictError, ValidationError
from comanda.core.timeutils import utcnow
from comanda.models.kitchen_ticket import KitchenTicket
from comanda.models.order import ORDER_STATUSES, PAYMENT_STATUSES, Order
from comanda.models.order_item import OrderItem
from comanda.models.product import Product
from comanda.services.audit import log_action
from comanda.services.capabilities import VenueCapabilities
from comanda.services.idempotency import commit_or_replay, find_replay, normalize_key, remember
from comanda.services.kitchen import create_kitchen_ticket
from comanda.services.order_events import (
    emit_order_created,
    emit_order_paid,
    emit_order_updated,
    emit_ticket_created,
)
from comanda.services.payments import apply_payment, normalize_payment_method

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
EDITABLE_FIELDS = {"code", "customer_name"}
MAX_LIST_LIMIT = 200


def _get(entry: Any, key: str, default=None):
    if isinstance(entry, Mapping):
        return entry.get(key, default)
    return getattr(entry, key, default)


def _normalize_items(items: Iterable[Any] | None) -> list[dict]:
    normalized: list[dict] = []
    for entry in items or []:
        product_id = _get(entry, "product_id")
        qty = _get(entry, "qty")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError("Quantidade deve ser um inteiro maior que zero")
        try:
            product_id = int(product_id)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Produto inválido") from exc
        note = (_get(entry, "note") or "").strip() or None
        normalized.append({"product_id": product_id, "qty": qty, "note": note})

    if not normalized:
        raise ValidationError("A comanda precisa de pelo menos um item")
    return normalized


def _load_products(db: Session, *, venue_id: int, product_ids: set[int]) -> dict[int, Product]:
    products = (
        db.query(Product)
        .filter(
            Product.venue_id == venue_id,
            Product.id.in_(product_ids),
            Product.active.is_(True),
        )
        .all()
    )
    by_id = {product.id: product for product in products}
    if set(by_id) != product_ids:
        missing = sorted(product_ids - set(by_id))
        logger.warning("Order rejected venue_id=%s unknown_or_inactive_products=%s", venue_id, missing)
        raise ValidationError("Um ou mais produtos não encontrados ou inativos")
    return by_id


def build_order_items(normalized: list[dict], products: dict[int, Product]) -> tuple[list[OrderItem], Decimal]:
    """Monta os itens com o preço do catálogo; preço enviado pelo cliente é ignorado."""
    total = Decimal("0.00")
    order_items: list[OrderItem] = []
    for entry in normalized:
        product = products[entry["product_id"]]
        unit_price = Decimal(product.price).quantize(CENTS)
        total += unit_price * entry["qty"]
        order_items.append(
            OrderItem(
                product_id=product.id,
                product_name=product.name,
                qty=entry["qty"],
                unit_price=unit_price,
                note=entry["note"],
            )
        )
    return order_items, total.quantize(CENTS)


def get_order(db: Session, *, venue_id: int, order_id: int) -> Order:
    order = (
        db.query(Order)
        .options(
            selectinload(Order.items),
            selectinload(Order.payments),
            selectinload(Order.kitchen_ticket),
        )
        .filter(Order.id == order_id, Order.venue_id == venue_id)
        .first()
    )
    if not order:
        raise NotFoundError("Comanda não encontrada")
    return order


def create_order(
    db: Session,
    *,
    capabilities: VenueCapabilities,
    items: Iterable[Any],
    requested_by: int,
    code: str | None = None,
    customer_name: str | None = None,
    pay_now: bool = False,
    payment_method: str | None = None,
    idempotency_key: str | None = None,
) -> Order:
    """Cria a comanda, os itens e (se houver cozinha) o ticket numa única transação."""
    capabilities.require_orders()
    venue_id = capabilities.venue_id
    normalized = _normalize_items(items)
    if pay_now:
        payment_method = normalize_payment_method(payment_method)
    key = normalize_key(idempotency_key)

    ticket: Optional[KitchenTicket] = None
    try:
        replay_id = find_replay(db, venue_id=venue_id, key=key, operation="create_order")
        if replay_id is not None:
            db.commit()
            return get_order(db, venue_id=venue_id, order_id=replay_id)

        products = _load_products(db, venue_id=venue_id, product_ids={entry["product_id"] for entry in normalized})
        order_items, total_amount = build_order_items(normalized, products)

        order = Order(
            venue_id=venue_id,
            code=(code or "").strip() or None,
            customer_name=(customer_name or "").strip() or None,
            status="open",
            payment_status="unpaid",
            total_amount=total_amount,
            paid_amount=Decimal("0.00"),
            created_by=requested_by,
            created_at=utcnow(),
        )
        order.items = order_items
        db.add(order)
        db.flush()

        if capabilities.kitchen_enabled:
            ticket = create_kitchen_ticket(db, order)

        if pay_now:
            apply_payment(db, order, method=payment_method, amount=total_amount, received_by=requested_by)

        log_action(
            db,
            venue_id=venue_id,
            user_id=requested_by,
            action="create_order",
            entity_type="order",
            entity_id=order.id,
            meta={
                "code": order.code,
                "total_amount": str(total_amount),
                "items_count": len(order_items),
                "payment_status": order.payment_status,
                "ticket_number": ticket.ticket_number if ticket else None,
            },
        )
        remember(db, venue_id=venue_id, key=key, operation="create_order", entity_id=order.id)
        replay_id = commit_or_replay(db, venue_id=venue_id, key=key, operation="create_order")
    except DomainError as exc:
        db.rollback()
        logger.warning("Order creation rejected venue_id=%s reason=%s", venue_id, exc.detail)
        raise
    except Exception:
        db.rollback()
        logger.exception("Order creation failed venue_id=%s", venue_id)
        raise

    if replay_id is not None:
        return get_order(db, venue_id=venue_id, order_id=replay_id)

    order = get_order(db, venue_id=venue_id, order_id=order.id)
    logger.info(
        "Order created order_id=%s total_amount=%s items=%s ticket=%s",
        order.id,
        order.total_amount,
        len(order.items),
        ticket.ticket_number if ticket else None,
    )
    emit_order_created(order)
    if order.kitchen_ticket is not None:
        emit_ticket_created(order.kitchen_ticket)
    if order.payment_status == "paid":
        emit_order_paid(order, previous_status="open")
    return order


def _finish_order(
    db: Session,
    *,
    capabilities: VenueCapabilities,
    order_id: int,
    actor_id: int,
    target: str,
    idempotency_key: str | None,
) -> Order:
    capabilities.require_orders()
    venue_id = capabilities.venue_id
    operation = "cancel_order" if target == "canceled" else "close_order"
    key = normalize_key(idempotency_key)

    try:
        replay_id = find_replay(db, venue_id=venue_id, key=key, operation=operation)
        if replay_id is not None:
            db.commit()
            return get_order(db, venue_id=venue_id, order_id=replay_id)

        order = get_order(db, venue_id=venue_id, order_id=order_id)
        if order.status != "open":
            raise StateConflictError(f"Comanda já está {order.status}")

        values: dict[str, Any] = {"status": target}
        if target == "closed":
            values["closed_at"] = utcnow()
        result = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == "open")
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StateConflictError("Comanda foi alterada por outra requisição")

        log_action(
            db,
            venue_id=venue_id,
            user_id=actor_id,
            action=operation,
            entity_type="order",
            entity_id=order.id,
            meta={"from_status": "open", "to_status": target, "paid_amount": str(order.paid_amount)},
        )
        remember(db, venue_id=venue_id, key=key, operation=operation, entity_id=order.id)
        replay_id = commit_or_replay(db, venue_id=venue_id, key=key, operation=operation)
    except DomainError as exc:
        db.rollback()
        logger.warning("%s rejected order_id=%s reason=%s", operation, order_id, exc.detail)
        raise
    except Exception:
        db.rollback()
        logger.exception("%s failed order_id=%s", operation, order_id)
        raise

    if replay_id is not None:
        return get_order(db, venue_id=venue_id, order_id=replay_id)

    db.refresh(order)
    logger.info("Order %s order_id=%s", target, order.id)
    emit_order_updated(order, previous_status="open")
    return order


def cancel_order(
    db: Session,
    *,
    capabilities: VenueCapabilities,
    order_id: int,
    actor_id: int,
    idempotency_key: str | None = None,
) -> Order:
    return _finish_order(
        db,
        capabilities=capabilities,
        order_id=order_id,
        actor_id=actor_id,
        target="canceled",
        idempotency_key=idempotency_key,
    )


def close_order(
    db: Session,
    *,
    capabilities: VenueCapabilities,
    order_id: int,
    actor_id: int,
    idempotency_key: str | None = None,
) -> Order:
    return _finish_order(
        db,
        capabilities=capabilities,
        order_id=order_id,
        actor_id=actor_id,
        target="closed",
        idempotency_key=idempotency_key,
    )


def update_order(
    db: Session,
    *,
    capabilities: VenueCapabilities,
    order_id: int,
    fields: Mapping[str, Any],
    actor_id: int,
) -> Order:
    """Altera apenas metadados (code, customer_name) de comanda aberta.

    Valores, status e pagamento têm operações próprias e são recusados aqui.
    """
    capabilities.require_orders()
    venue_id = capabilities.venue_id
    forbidden = sorted(set(fields) - EDITABLE_FIELDS)
    if forbidden:
        raise ValidationError(f"Campos não editáveis: {', '.join(forbidden)}")
    if not fields:
        raise ValidationError("Nenhum campo para atualizar")

    try:
        order = get_order(db, venue_id=venue_id, order_id=order_id)
        if order.status != "open":
            raise StateConflictError(f"Comanda {order.status} não pode ser alterada")

        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"Valor inválido para {name}")
            value = (value or "").strip() or None
            if getattr(order, name) != value:
                changes[name] = {"from": getattr(order, name), "to": value}
                setattr(order, name, value)

        if changes:
            log_action(
                db,
                venue_id=venue_id,
                user_id=actor_id,
                action="update_order",
                entity_type="order",
                entity_id=order.id,
                meta=changes,
            )
        db.commit()
    except DomainError as exc:
        db.rollback()
        logger.warning("Order update rejected order_id=%s reason=%s", order_id, exc.detail)
        raise
    except Exception:
        db.rollback()
        logger.exception("Order update failed order_id=%s", order_id)
        raise

    db.refresh(order)
    if changes:
        emit_order_updated(order, previous_status=order.status)
    return order


def list_orders(
    db: Session,
    *,
    venue_id: int,
    status: str | None = None,
    payment_status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Order]:
    query = (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.kitchen_ticket))
        .filter(Order.venue_id == venue_id)
    )
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Status inválido: {status}")
        query = query.filter(Order.status == status)
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Status de pagamento inválido: {payment_status}")
        query = query.filter(Order.payment_status == payment_status)
    if start_date:
        query = query.filter(Order.created_at >= start_date)
    if end_date:
        query = query.filter(Order.created_at <= end_date)
    if search:
        query = query.filter(func.lower(Order.code).contains(search.strip().lower()))

    limit = max(1, min(int(limit), MAX_LIST_LIMIT))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(max(0, int(offset))).limit(limit).all()
