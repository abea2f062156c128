from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from comanda.core.database import get_db
from comanda.core.errors import FeatureDisabledError, to_http_exception
from comanda.core.request_context import set_request_context
from comanda.models.venue import Venue
from comanda.services.capabilities import VenueCapabilities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    user_id: int
    venue_id: int
    capabilities: VenueCapabilities


def get_actor(request: Request, db: Session = Depends(get_db)) -> Actor:
    """Identifica operador e estabelecimento a partir dos cabeçalhos.

    A autenticação é feita antes (gateway); aqui só exigimos que os
    identificadores existam e que o estabelecimento esteja ativo.
    """
    venue_id = getattr(request.state, "venue_id", None)
    user_id = getattr(request.state, "user_id", None)
    if venue_id is None or user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Cabeçalhos X-Venue-ID e X-User-ID são obrigatórios",
        )

    venue = db.query(Venue).filter(Venue.id == venue_id).first()
    if not venue or not venue.is_active:
        logger.warning("Unknown or inactive venue venue_id=%s", venue_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Estabelecimento não encontrado")

    set_request_context(venue_id=str(venue_id), user_id=str(user_id))
    return Actor(user_id=int(user_id), venue_id=int(venue.id), capabilities=VenueCapabilities.from_venue(venue))


def require_orders_actor(actor: Actor = Depends(get_actor)) -> Actor:
    try:
        actor.capabilities.require_orders()
    except FeatureDisabledError as exc:
        raise to_http_exception(exc) from exc
    return actor


def require_kitchen_actor(actor: Actor = Depends(get_actor)) -> Actor:
    try:
        actor.capabilities.require_kitchen()
    except FeatureDisabledError as exc:
        raise to_http_exception(exc) from exc
    return actor
