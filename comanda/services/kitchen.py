from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, joinedload

from comanda.core.errors import DomainError, NotFoundError, StateConflictError, ValidationError
from comanda.core.timeutils import as_utc, business_date, business_day_start, utcnow
from comanda.models.kitchen_ticket import TICKET_FLOW, KitchenTicket, KitchenTicketSequence
from comanda.models.order import Order
from comanda.services.audit import log_action
from comanda.services.idempotency import commit_or_replay, find_replay, normalize_key, remember
from comanda.services.order_events import emit_ticket_updated

logger = logging.getLogger(__name__)

NEXT_STATUS = {
    "queue": "preparing",
    "preparing": "ready",
    "ready": "delivered",
}
STATUS_TIMESTAMPS = {
    "preparing": "started_at",
    "ready": "ready_at",
    "delivered": "delivered_at",
}
OPERATION = "change_ticket_status"
DEFAULT_LIST_LIMIT = 50
STATS_SAMPLE_SIZE = 10


def next_ticket_number(db: Session, *, venue_id: int, day: date) -> int:
    """Incrementa o contador (venue, dia) na transação corrente."""
    dialect = db.get_bind().dialect.name
    table = KitchenTicketSequence.__table__

    if dialect in {"postgresql", "sqlite"}:
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = (
            insert(table)
            .values(venue_id=venue_id, business_date=day, last_number=1)
            .on_conflict_do_update(
                index_elements=[table.c.venue_id, table.c.business_date],
                set_={"last_number": table.c.last_number + 1},
            )
        )
        db.execute(stmt)
    else:
        result = db.execute(
            update(table)
            .where(table.c.venue_id == venue_id, table.c.business_date == day)
            .values(last_number=table.c.last_number + 1)
        )
        if result.rowcount == 0:
            db.execute(table.insert().values(venue_id=venue_id, business_date=day, last_number=1))

    return db.execute(
        select(table.c.last_number).where(table.c.venue_id == venue_id, table.c.business_date == day)
    ).scalar_one()


def create_kitchen_ticket(db: Session, order: Order) -> KitchenTicket:
    """Cria o ticket da comanda na fila, sem commit (faz parte da transação do pedido)."""
    day = business_date()
    ticket = KitchenTicket(
        order_id=order.id,
        venue_id=order.venue_id,
        ticket_number=next_ticket_number(db, venue_id=order.venue_id, day=day),
        business_date=day,
        status="queue",
        created_at=utcnow(),
    )
    db.add(ticket)
    db.flush()
    logger.info(
        "Kitchen ticket created ticket_id=%s order_id=%s number=%s",
        ticket.id,
        order.id,
        ticket.ticket_number,
    )
    return ticket


def _normalize_status(status: str | None) -> str:
    value = (status or "").strip().lower()
    if value not in TICKET_FLOW:
        raise ValidationError(f"Status de ticket inválido: {status}")
    return value


def get_ticket(db: Session, *, venue_id: int, ticket_id: int) -> KitchenTicket:
    ticket = (
        db.query(KitchenTicket)
        .options(joinedload(KitchenTicket.order).selectinload(Order.items))
        .filter(KitchenTicket.id == ticket_id, KitchenTicket.venue_id == venue_id)
        .first()
    )
    if not ticket:
        raise NotFoundError("Ticket não encontrado")
    return ticket


def _transition(
    db: Session,
    *,
    venue_id: int,
    ticket_id: int,
    target: Optional[str],
    actor_id: int,
    via: str,
    idempotency_key: str | None,
) -> KitchenTicket:
    """Única porta de mudança de estado: um passo por vez, só para frente."""
    key = normalize_key(idempotency_key)
    try:
        replay_id = find_replay(db, venue_id=venue_id, key=key, operation=OPERATION)
        if replay_id is not None:
            db.commit()
            return get_ticket(db, venue_id=venue_id, ticket_id=replay_id)

        ticket = get_ticket(db, venue_id=venue_id, ticket_id=ticket_id)
        current = ticket.status
        expected = NEXT_STATUS.get(current)
        if expected is None:
            raise StateConflictError("Ticket já foi entregue")
        if target is None:
            target = expected
        if target == current:
            raise StateConflictError(f"Ticket já está em {current}")
        if target != expected:
            raise StateConflictError(f"Transição inválida de {current} para {target}")

        now = utcnow()
        result = db.execute(
            update(KitchenTicket)
            .where(KitchenTicket.id == ticket.id, KitchenTicket.status == current)
            .values({"status": target, STATUS_TIMESTAMPS[target]: now})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StateConflictError("Ticket foi atualizado por outra requisição")

        log_action(
            db,
            venue_id=venue_id,
            user_id=actor_id,
            action="change_ticket_status",
            entity_type="kitchen_ticket",
            entity_id=ticket.id,
            meta={
                "from_status": current,
                "to_status": target,
                "via": via,
                "order_id": ticket.order_id,
                "ticket_number": ticket.ticket_number,
            },
        )
        remember(db, venue_id=venue_id, key=key, operation=OPERATION, entity_id=ticket.id)
        replay_id = commit_or_replay(db, venue_id=venue_id, key=key, operation=OPERATION)
    except DomainError as exc:
        db.rollback()
        logger.warning("Ticket transition rejected ticket_id=%s reason=%s", ticket_id, exc.detail)
        raise
    except Exception:
        db.rollback()
        logger.exception("Ticket transition failed ticket_id=%s", ticket_id)
        raise

    if replay_id is not None:
        return get_ticket(db, venue_id=venue_id, ticket_id=replay_id)

    db.refresh(ticket)
    logger.info("Kitchen ticket %s -> %s ticket_id=%s", current, ticket.status, ticket.id)
    emit_ticket_updated(ticket, previous_status=current)
    return ticket


def advance_ticket(
    db: Session,
    *,
    venue_id: int,
    ticket_id: int,
    actor_id: int,
    idempotency_key: str | None = None,
) -> KitchenTicket:
    return _transition(
        db,
        venue_id=venue_id,
        ticket_id=ticket_id,
        target=None,
        actor_id=actor_id,
        via="advance",
        idempotency_key=idempotency_key,
    )


def set_ticket_status(
    db: Session,
    *,
    venue_id: int,
    ticket_id: int,
    status: str,
    actor_id: int,
    idempotency_key: str | None = None,
) -> KitchenTicket:
    # Mesma disciplina do advance: o status informado precisa ser o próximo passo.
    return _transition(
        db,
        venue_id=venue_id,
        ticket_id=ticket_id,
        target=_normalize_status(status),
        actor_id=actor_id,
        via="set_status",
        idempotency_key=idempotency_key,
    )


def list_tickets(
    db: Session,
    *,
    venue_id: int,
    status: str | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> List[KitchenTicket]:
    stage = case({value: index for index, value in enumerate(TICKET_FLOW)}, value=KitchenTicket.status)
    query = (
        db.query(KitchenTicket)
        .options(joinedload(KitchenTicket.order).selectinload(Order.items))
        .filter(KitchenTicket.venue_id == venue_id)
    )
    if status:
        query = query.filter(KitchenTicket.status == _normalize_status(status))
    return query.order_by(stage.asc(), KitchenTicket.created_at.asc(), KitchenTicket.id.asc()).limit(limit).all()


def kitchen_stats(db: Session, *, venue_id: int, now: datetime | None = None) -> Dict[str, Any]:
    day_start = business_day_start(now)
    counts = dict(
        db.query(KitchenTicket.status, func.count(KitchenTicket.id))
        .filter(KitchenTicket.venue_id == venue_id, KitchenTicket.status != "delivered")
        .group_by(KitchenTicket.status)
        .all()
    )
    delivered_today = (
        db.query(func.count(KitchenTicket.id))
        .filter(
            KitchenTicket.venue_id == venue_id,
            KitchenTicket.status == "delivered",
            KitchenTicket.delivered_at >= day_start,
        )
        .scalar()
    )

    recent_delivered = (
        db.query(KitchenTicket.created_at, KitchenTicket.delivered_at)
        .filter(KitchenTicket.venue_id == venue_id, KitchenTicket.status == "delivered")
        .order_by(KitchenTicket.delivered_at.desc())
        .limit(STATS_SAMPLE_SIZE)
        .all()
    )
    average_minutes = 0
    if recent_delivered:
        total_seconds = sum(
            (as_utc(row.delivered_at) - as_utc(row.created_at)).total_seconds() for row in recent_delivered
        )
        average_minutes = int(total_seconds / len(recent_delivered) // 60)

    return {
        "queue": counts.get("queue", 0),
        "preparing": counts.get("preparing", 0),
        "ready": counts.get("ready", 0),
        "delivered": int(delivered_today or 0),
        "average_time_minutes": average_minutes,
    }
