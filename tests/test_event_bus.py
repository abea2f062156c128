from comanda.services.event_bus import EventBus


def test_failing_handler_does_not_stop_the_others():
    bus = EventBus()
    received = []

    def broken(_payload):
        raise RuntimeError("boom")

    bus.subscribe("order.paid", broken)
    bus.subscribe("order.paid", received.append)

    bus.emit("order.paid", {"order_id": 1})

    assert received == [{"order_id": 1}]


def test_subscribe_is_idempotent_and_unsubscribe_removes():
    bus = EventBus()
    received = []

    bus.subscribe("ticket.updated", received.append)
    bus.subscribe("ticket.updated", received.append)
    bus.emit("ticket.updated", {"ticket_id": 1})
    bus.unsubscribe("ticket.updated", received.append)
    bus.emit("ticket.updated", {"ticket_id": 2})

    assert received == [{"ticket_id": 1}]
