from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from comanda.core.database import get_db
from comanda.deps import Actor, require_orders_actor
from comanda.routers._errors import domain_errors
from comanda.services.orders import get_order
from comanda.services.payments import list_payments, record_payment
from comanda.services.snapshots import order_to_dict, payment_to_dict

router = APIRouter(prefix="/api", tags=["payments"])


class PaymentCreate(BaseModel):
    method: str
    amount: Decimal = Field(..., gt=0)


@router.post("/orders/{order_id}/payments", status_code=201)
def create_payment(
    order_id: int,
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    with domain_errors("record_payment"):
        payment = record_payment(
            db,
            venue_id=actor.venue_id,
            order_id=order_id,
            method=payload.method,
            amount=payload.amount,
            received_by=actor.user_id,
            idempotency_key=idempotency_key,
        )
        order = get_order(db, venue_id=actor.venue_id, order_id=payment.order_id)
    return {
        "payment": payment_to_dict(payment),
        "order": order_to_dict(order, include_details=False),
    }


@router.get("/orders/{order_id}/payments")
def list_order_payments(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
):
    with domain_errors("list_payments"):
        payments = list_payments(db, venue_id=actor.venue_id, order_id=order_id)
    return [payment_to_dict(payment) for payment in payments]
