from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from comanda.core.database import get_db
from comanda.deps import Actor, require_kitchen_actor
from comanda.routers._errors import domain_errors
from comanda.services.kitchen import advance_ticket, get_ticket, kitchen_stats, list_tickets, set_ticket_status
from comanda.services.snapshots import ticket_to_dict

router = APIRouter(prefix="/api/kitchen", tags=["kitchen"])


class TicketStatusUpdate(BaseModel):
    status: str


@router.get("/tickets")
def list_tickets_endpoint(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_kitchen_actor),
):
    with domain_errors("list_tickets"):
        tickets = list_tickets(db, venue_id=actor.venue_id, status=status, limit=limit)
    return [ticket_to_dict(ticket, include_order=True) for ticket in tickets]


@router.get("/tickets/{ticket_id}")
def get_ticket_endpoint(
    ticket_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_kitchen_actor),
):
    with domain_errors("get_ticket"):
        ticket = get_ticket(db, venue_id=actor.venue_id, ticket_id=ticket_id)
    return ticket_to_dict(ticket, include_order=True)


@router.post("/tickets/{ticket_id}/advance")
def advance_ticket_endpoint(
    ticket_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_kitchen_actor),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    with domain_errors("advance_ticket"):
        ticket = advance_ticket(
            db,
            venue_id=actor.venue_id,
            ticket_id=ticket_id,
            actor_id=actor.user_id,
            idempotency_key=idempotency_key,
        )
    return ticket_to_dict(ticket)


@router.patch("/tickets/{ticket_id}/status")
def set_ticket_status_endpoint(
    ticket_id: int,
    payload: TicketStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_kitchen_actor),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    with domain_errors("set_ticket_status"):
        ticket = set_ticket_status(
            db,
            venue_id=actor.venue_id,
            ticket_id=ticket_id,
            status=payload.status,
            actor_id=actor.user_id,
            idempotency_key=idempotency_key,
        )
    return ticket_to_dict(ticket)


@router.get("/stats")
def kitchen_stats_endpoint(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_kitchen_actor),
):
    return kitchen_stats(db, venue_id=actor.venue_id)
