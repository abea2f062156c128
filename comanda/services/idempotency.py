"""Deduplicação de mutações reenviadas pela fila offline do cliente.

A chave vem no header ``Idempotency-Key`` e é gravada na mesma transação
da mutação. Uma repetição dentro da janela devolve o id da entidade criada
na primeira execução, sem novo efeito colateral.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from comanda.core.config import IDEMPOTENCY_WINDOW_HOURS
from comanda.core.errors import ValidationError
from comanda.core.timeutils import as_utc, utcnow
from comanda.models.idempotency_key import IdempotencyKey

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 128


def normalize_key(key: str | None) -> str | None:
    value = (key or "").strip()
    if not value:
        return None
    if len(value) > MAX_KEY_LENGTH:
        raise ValidationError("Idempotency-Key muito longa")
    return value


def find_replay(db: Session, *, venue_id: int, key: str | None, operation: str) -> int | None:
    if not key:
        return None
    entry = (
        db.query(IdempotencyKey)
        .filter(IdempotencyKey.venue_id == venue_id, IdempotencyKey.key == key)
        .first()
    )
    if entry is None:
        return None
    if as_utc(entry.created_at) < utcnow() - timedelta(hours=IDEMPOTENCY_WINDOW_HOURS):
        # fora da janela: a chave pode ser reutilizada
        db.delete(entry)
        db.flush()
        return None
    if entry.operation != operation:
        raise ValidationError("Idempotency-Key já utilizada em outra operação")
    logger.info("Idempotent replay venue_id=%s operation=%s entity_id=%s", venue_id, operation, entry.entity_id)
    return int(entry.entity_id)


def remember(db: Session, *, venue_id: int, key: str | None, operation: str, entity_id: int) -> None:
    if not key:
        return
    db.add(IdempotencyKey(venue_id=venue_id, key=key, operation=operation, entity_id=entity_id))


def commit_or_replay(db: Session, *, venue_id: int, key: str | None, operation: str) -> int | None:
    """Commita; se outra requisição gravou a mesma chave antes, devolve o id dela."""
    try:
        db.commit()
        return None
    except IntegrityError:
        db.rollback()
        if key:
            replay_id = find_replay(db, venue_id=venue_id, key=key, operation=operation)
            if replay_id is not None:
                return replay_id
        raise
