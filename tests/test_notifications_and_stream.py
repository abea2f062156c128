import asyncio
import json
import threading

import pytest

import comanda.services.event_handlers  # noqa: F401  registra handlers do event bus
from comanda.routers.events import venue_event_stream
from comanda.services.notifications import NotificationHub, format_sse, notification_hub
from tests.fixtures_data import BAR_VENUE_ID, HAPPY_PATH_ORDER_PAYLOAD, KITCHEN_VENUE_ID, build_client, headers


@pytest.fixture(autouse=True)
def _reset_hub():
    notification_hub.reset()
    yield
    notification_hub.reset()


def _frame_data(frame: str) -> dict:
    line = [row for row in frame.splitlines() if row.startswith("data: ")][0]
    return json.loads(line[len("data: "):])


def test_mutations_publish_events_for_their_venue_only():
    client, _db = build_client()

    order = client.post("/api/orders", json=HAPPY_PATH_ORDER_PAYLOAD, headers=headers()).json()
    client.post(f"/api/kitchen/tickets/{order['kitchen_ticket']['id']}/advance", headers=headers())
    client.post(f"/api/orders/{order['id']}/payments", json={"method": "pix", "amount": "21.00"}, headers=headers())

    events = [event.type for event in notification_hub.recent(KITCHEN_VENUE_ID, limit=10)]
    assert events == ["order_paid", "ticket_updated", "ticket_created", "new_order"]
    assert notification_hub.recent(BAR_VENUE_ID) == []

    recent = client.get("/api/events/recent", params={"limit": 2}, headers=headers()).json()
    assert [event["type"] for event in recent] == ["order_paid", "ticket_updated"]
    assert recent[0]["entity_id"] == order["id"]
    assert recent[0]["data"]["status"] == "closed"


def test_rejected_mutation_publishes_nothing():
    client, _db = build_client()
    order_id = client.post("/api/orders", json=HAPPY_PATH_ORDER_PAYLOAD, headers=headers()).json()["id"]
    client.post(f"/api/orders/{order_id}/cancel", headers=headers())
    before = len(notification_hub.recent(KITCHEN_VENUE_ID, limit=100))

    client.post(f"/api/orders/{order_id}/payments", json={"method": "pix", "amount": "1.00"}, headers=headers())

    assert len(notification_hub.recent(KITCHEN_VENUE_ID, limit=100)) == before


def test_full_subscriber_queue_drops_without_blocking_publisher():
    hub = NotificationHub(queue_size=2)

    async def scenario():
        subscriber = hub.subscribe(KITCHEN_VENUE_ID)
        for entity_id in range(5):
            hub.publish("order_updated", venue_id=KITCHEN_VENUE_ID, entity_id=entity_id, data={})
        await asyncio.sleep(0)
        return subscriber

    subscriber = asyncio.run(scenario())

    assert subscriber.queue.qsize() == 2
    assert subscriber.dropped == 3


def test_publish_from_worker_thread_reaches_subscriber():
    hub = NotificationHub()

    async def scenario():
        subscriber = hub.subscribe(KITCHEN_VENUE_ID)
        worker = threading.Thread(
            target=hub.publish,
            args=("ticket_created",),
            kwargs={"venue_id": KITCHEN_VENUE_ID, "entity_id": 9, "data": {"ticket_number": 1}},
        )
        worker.start()
        worker.join()
        return await asyncio.wait_for(subscriber.queue.get(), timeout=1)

    event = asyncio.run(scenario())

    assert event.type == "ticket_created"
    assert event.entity_id == 9


def test_closed_loop_subscriber_is_removed():
    hub = NotificationHub()
    loop = asyncio.new_event_loop()
    hub.subscribe(KITCHEN_VENUE_ID, loop=loop)
    loop.close()

    hub.publish("new_order", venue_id=KITCHEN_VENUE_ID, entity_id=1, data={})

    assert hub.subscriber_count(KITCHEN_VENUE_ID) == 0


def test_unknown_event_type_is_rejected():
    with pytest.raises(ValueError):
        NotificationHub().publish("order_deleted", venue_id=1, entity_id=1, data={})


def test_history_is_bounded():
    hub = NotificationHub(history_limit=3)
    for entity_id in range(5):
        hub.publish("new_order", venue_id=KITCHEN_VENUE_ID, entity_id=entity_id, data={})

    assert [event.entity_id for event in hub.recent(KITCHEN_VENUE_ID, limit=10)] == [4, 3, 2]


def test_stream_sends_connected_event_then_heartbeat():
    hub = NotificationHub()

    async def scenario():
        stream = venue_event_stream(KITCHEN_VENUE_ID, hub=hub, heartbeat_seconds=0.01)
        connected = await stream.__anext__()
        heartbeat = await stream.__anext__()
        await stream.aclose()
        return connected, heartbeat

    connected, heartbeat = asyncio.run(scenario())

    assert connected.startswith("event: connected\n")
    assert heartbeat.startswith("event: heartbeat\n")
    assert hub.subscriber_count() == 0


def test_stream_delivers_published_events():
    hub = NotificationHub()

    async def scenario():
        stream = venue_event_stream(KITCHEN_VENUE_ID, hub=hub, heartbeat_seconds=5)
        await stream.__anext__()
        hub.publish("order_paid", venue_id=KITCHEN_VENUE_ID, entity_id=42, data={"paid_amount": "21.00"})
        hub.publish("order_paid", venue_id=BAR_VENUE_ID, entity_id=43, data={})
        frame = await asyncio.wait_for(stream.__anext__(), timeout=1)
        await stream.aclose()
        return frame

    frame = asyncio.run(scenario())

    data = _frame_data(frame)
    assert data["type"] == "order_paid"
    assert data["entity_id"] == 42
    assert data["venue_id"] == KITCHEN_VENUE_ID
    assert data["data"] == {"paid_amount": "21.00"}


def test_format_sse():
    frame = format_sse({"a": "ç"}, event="heartbeat", event_id="1")

    assert frame == 'event: heartbeat\nid: 1\ndata: {"a": "ç"}\n\n'
