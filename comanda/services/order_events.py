from __future__ import annotations

from comanda.models.kitchen_ticket import KitchenTicket
from comanda.models.order import Order
from comanda.services.event_bus import event_bus
from comanda.services.snapshots import money, ticket_to_dict


def build_order_payload(order: Order, previous_status: str | None = None) -> dict:
    return {
        "order_id": order.id,
        "venue_id": order.venue_id,
        "code": order.code,
        "customer_name": order.customer_name,
        "status": order.status,
        "previous_status": previous_status,
        "payment_status": order.payment_status,
        "total_amount": money(order.total_amount),
        "paid_amount": money(order.paid_amount),
        "items_count": len(order.items),
    }


def build_ticket_payload(ticket: KitchenTicket, previous_status: str | None = None) -> dict:
    payload = ticket_to_dict(ticket)
    payload["ticket_id"] = ticket.id
    payload["previous_status"] = previous_status
    return payload


def emit_order_created(order: Order) -> None:
    event_bus.emit("order.created", build_order_payload(order))


def emit_order_updated(order: Order, previous_status: str | None = None) -> None:
    event_bus.emit("order.updated", build_order_payload(order, previous_status=previous_status))


def emit_order_paid(order: Order, previous_status: str | None = None) -> None:
    event_bus.emit("order.paid", build_order_payload(order, previous_status=previous_status))


def emit_ticket_created(ticket: KitchenTicket) -> None:
    event_bus.emit("ticket.created", build_ticket_payload(ticket))


def emit_ticket_updated(ticket: KitchenTicket, previous_status: str) -> None:
    if previous_status == ticket.status:
        return
    event_bus.emit("ticket.updated", build_ticket_payload(ticket, previous_status=previous_status))
