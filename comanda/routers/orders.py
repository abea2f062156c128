from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from comanda.core.database import get_db
from comanda.deps import Actor, require_orders_actor
from comanda.routers._errors import domain_errors
from comanda.services.orders import (
    cancel_order,
    close_order,
    create_order,
    get_order,
    list_orders,
    update_order,
)
from comanda.services.snapshots import order_to_dict

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderItemIn(BaseModel):
    product_id: int
    qty: int = Field(..., gt=0)
    note: Optional[str] = Field(None, max_length=255)


class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    code: Optional[str] = Field(None, max_length=50)
    customer_name: Optional[str] = Field(None, max_length=120)
    pay_now: bool = False
    payment_method: Optional[str] = None


class OrderUpdate(BaseModel):
    # Campos fora da lista são recusados pelo serviço, não ignorados.
    model_config = ConfigDict(extra="allow")

    code: Optional[str] = Field(None, max_length=50)
    customer_name: Optional[str] = Field(None, max_length=120)


@router.post("", status_code=201)
def create_order_endpoint(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    with domain_errors("create_order"):
        order = create_order(
            db,
            capabilities=actor.capabilities,
            items=[item.model_dump() for item in payload.items],
            requested_by=actor.user_id,
            code=payload.code,
            customer_name=payload.customer_name,
            pay_now=payload.pay_now,
            payment_method=payload.payment_method,
            idempotency_key=idempotency_key,
        )
    return order_to_dict(order)


@router.get("")
def list_orders_endpoint(
    status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
):
    with domain_errors("list_orders"):
        orders = list_orders(
            db,
            venue_id=actor.venue_id,
            status=status,
            payment_status=payment_status,
            start_date=start_date,
            end_date=end_date,
            search=search,
            limit=limit,
            offset=offset,
        )
    return [order_to_dict(order, include_details=False) for order in orders]


@router.get("/{order_id}")
def get_order_endpoint(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
):
    with domain_errors("get_order"):
        order = get_order(db, venue_id=actor.venue_id, order_id=order_id)
    return order_to_dict(order)


@router.patch("/{order_id}")
def update_order_endpoint(
    order_id: int,
    payload: OrderUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
):
    with domain_errors("update_order"):
        order = update_order(
            db,
            capabilities=actor.capabilities,
            order_id=order_id,
            fields=payload.model_dump(exclude_unset=True),
            actor_id=actor.user_id,
        )
    return order_to_dict(order)


@router.post("/{order_id}/cancel")
def cancel_order_endpoint(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    with domain_errors("cancel_order"):
        order = cancel_order(
            db,
            capabilities=actor.capabilities,
            order_id=order_id,
            actor_id=actor.user_id,
            idempotency_key=idempotency_key,
        )
    return order_to_dict(order)


@router.post("/{order_id}/close")
def close_order_endpoint(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_orders_actor),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    with domain_errors("close_order"):
        order = close_order(
            db,
            capabilities=actor.capabilities,
            order_id=order_id,
            actor_id=actor.user_id,
            idempotency_key=idempotency_key,
        )
    return order_to_dict(order)
