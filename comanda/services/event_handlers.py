from __future__ import annotations

from comanda.services.event_bus import event_bus
from comanda.services.notifications import notification_hub


def handle_order_created(payload: dict) -> None:
    notification_hub.publish(
        "new_order",
        venue_id=payload["venue_id"],
        entity_id=payload["order_id"],
        data=payload,
    )


def handle_order_updated(payload: dict) -> None:
    notification_hub.publish(
        "order_updated",
        venue_id=payload["venue_id"],
        entity_id=payload["order_id"],
        data=payload,
    )


def handle_order_paid(payload: dict) -> None:
    notification_hub.publish(
        "order_paid",
        venue_id=payload["venue_id"],
        entity_id=payload["order_id"],
        data=payload,
    )


def handle_ticket_created(payload: dict) -> None:
    notification_hub.publish(
        "ticket_created",
        venue_id=payload["venue_id"],
        entity_id=payload["ticket_id"],
        data=payload,
    )


def handle_ticket_updated(payload: dict) -> None:
    notification_hub.publish(
        "ticket_updated",
        venue_id=payload["venue_id"],
        entity_id=payload["ticket_id"],
        data=payload,
    )


def register_handlers() -> None:
    event_bus.subscribe("order.created", handle_order_created)
    event_bus.subscribe("order.updated", handle_order_updated)
    event_bus.subscribe("order.paid", handle_order_paid)
    event_bus.subscribe("ticket.created", handle_ticket_created)
    event_bus.subscribe("ticket.updated", handle_ticket_updated)


register_handlers()
