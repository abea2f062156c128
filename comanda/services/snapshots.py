from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict

from comanda.core.timeutils import as_utc
from comanda.models.kitchen_ticket import KitchenTicket
from comanda.models.order import Order
from comanda.models.order_item import OrderItem
from comanda.models.payment import Payment

CENTS = Decimal("0.01")


def money(value: Any) -> str:
    return str(Decimal(value or 0).quantize(CENTS))


def _iso(value) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "qty": item.qty,
        "unit_price": money(item.unit_price),
        "subtotal": money(item.subtotal),
        "note": item.note,
    }


def payment_to_dict(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "order_id": payment.order_id,
        "method": payment.method,
        "amount": money(payment.amount),
        "received_by": payment.received_by,
        "received_at": _iso(payment.received_at),
    }


def ticket_to_dict(ticket: KitchenTicket, *, include_order: bool = False) -> Dict[str, Any]:
    data = {
        "id": ticket.id,
        "order_id": ticket.order_id,
        "venue_id": ticket.venue_id,
        "ticket_number": ticket.ticket_number,
        "business_date": ticket.business_date.isoformat() if ticket.business_date else None,
        "status": ticket.status,
        "created_at": _iso(ticket.created_at),
        "started_at": _iso(ticket.started_at),
        "ready_at": _iso(ticket.ready_at),
        "delivered_at": _iso(ticket.delivered_at),
    }
    if include_order and ticket.order is not None:
        data["order"] = {
            "id": ticket.order.id,
            "code": ticket.order.code,
            "customer_name": ticket.order.customer_name,
            "items": [order_item_to_dict(item) for item in ticket.order.items],
        }
    return data


def order_to_dict(order: Order, *, include_details: bool = True) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "venue_id": order.venue_id,
        "code": order.code,
        "customer_name": order.customer_name,
        "status": order.status,
        "payment_status": order.payment_status,
        "total_amount": money(order.total_amount),
        "paid_amount": money(order.paid_amount),
        "created_by": order.created_by,
        "created_at": _iso(order.created_at),
        "closed_at": _iso(order.closed_at),
    }
    if include_details:
        data["items"] = [order_item_to_dict(item) for item in order.items]
        data["payments"] = [payment_to_dict(payment) for payment in order.payments]
        data["kitchen_ticket"] = ticket_to_dict(order.kitchen_ticket) if order.kitchen_ticket else None
    return data
