"""Fan-out de eventos por estabelecimento para os clientes conectados via SSE.

Entrega best-effort, no máximo uma vez: quem não está conectado no momento
do evento perde o evento e precisa recarregar os dados. Publicar nunca
bloqueia quem publica (as mutações rodam em threads do pool do FastAPI).
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

from comanda.core.config import NOTIFICATION_HISTORY_LIMIT, SSE_SUBSCRIBER_QUEUE_SIZE
from comanda.core.timeutils import utcnow

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    "new_order",
    "order_updated",
    "order_paid",
    "ticket_created",
    "ticket_updated",
}


@dataclass
class VenueEvent:
    type: str
    venue_id: int
    entity_id: int
    data: Dict[str, Any]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "venue_id": self.venue_id,
            "entity_id": self.entity_id,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class Subscriber:
    def __init__(self, venue_id: int, loop: asyncio.AbstractEventLoop, maxsize: int) -> None:
        self.id = uuid.uuid4().hex
        self.venue_id = venue_id
        self.loop = loop
        self.queue: asyncio.Queue[VenueEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: VenueEvent) -> None:
        # Pode ser chamado de qualquer thread; RuntimeError se o loop já fechou.
        self.loop.call_soon_threadsafe(self._put, event)

    def _put(self, event: VenueEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "SSE subscriber queue full; dropping event subscriber=%s venue_id=%s type=%s",
                self.id,
                self.venue_id,
                event.type,
            )


class NotificationHub:
    def __init__(
        self,
        *,
        history_limit: int = NOTIFICATION_HISTORY_LIMIT,
        queue_size: int = SSE_SUBSCRIBER_QUEUE_SIZE,
    ) -> None:
        self.history_limit = history_limit
        self.queue_size = queue_size
        self._subscribers: Dict[int, Dict[str, Subscriber]] = {}
        self._history: Dict[int, Deque[VenueEvent]] = {}
        self._lock = Lock()

    def subscribe(self, venue_id: int, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscriber:
        subscriber = Subscriber(venue_id, loop or asyncio.get_running_loop(), self.queue_size)
        with self._lock:
            self._subscribers.setdefault(venue_id, {})[subscriber.id] = subscriber
        logger.info("SSE client connected subscriber=%s venue_id=%s", subscriber.id, venue_id)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            venue_subscribers = self._subscribers.get(subscriber.venue_id, {})
            removed = venue_subscribers.pop(subscriber.id, None)
            if not venue_subscribers:
                self._subscribers.pop(subscriber.venue_id, None)
        if removed is not None:
            logger.info("SSE client disconnected subscriber=%s venue_id=%s", subscriber.id, subscriber.venue_id)

    def publish(self, event_type: str, *, venue_id: int, entity_id: int, data: Dict[str, Any]) -> VenueEvent:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Tipo de evento inválido: {event_type}")

        event = VenueEvent(type=event_type, venue_id=int(venue_id), entity_id=int(entity_id), data=data)
        with self._lock:
            history = self._history.setdefault(event.venue_id, deque(maxlen=self.history_limit))
            history.appendleft(event)
            targets = list(self._subscribers.get(event.venue_id, {}).values())

        sent = 0
        for subscriber in targets:
            try:
                subscriber.offer(event)
                sent += 1
            except RuntimeError:
                logger.error("Failed to deliver SSE event; removing subscriber=%s", subscriber.id)
                self.unsubscribe(subscriber)

        if sent:
            logger.debug("SSE broadcast venue_id=%s type=%s sent=%s", event.venue_id, event_type, sent)
        return event

    def recent(self, venue_id: int, limit: int = 10) -> List[VenueEvent]:
        with self._lock:
            history = list(self._history.get(venue_id, ()))
        return history[: max(0, limit)]

    def subscriber_count(self, venue_id: Optional[int] = None) -> int:
        with self._lock:
            if venue_id is not None:
                return len(self._subscribers.get(venue_id, {}))
            return sum(len(subscribers) for subscribers in self._subscribers.values())

    def reset(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._history.clear()


def format_sse(data: Dict[str, Any], *, event: Optional[str] = None, event_id: Optional[str] = None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
    return "\n".join(lines) + "\n\n"


notification_hub = NotificationHub()
