from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from comanda.core.config import SSE_HEARTBEAT_SECONDS
from comanda.core.database import get_db
from comanda.core.timeutils import utcnow
from comanda.deps import Actor, get_actor
from comanda.services.notifications import NotificationHub, format_sse, notification_hub

router = APIRouter(prefix="/api/events", tags=["events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def venue_event_stream(
    venue_id: int,
    *,
    request: Optional[Request] = None,
    hub: NotificationHub = notification_hub,
    heartbeat_seconds: float = SSE_HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    subscriber = hub.subscribe(venue_id)
    try:
        yield format_sse(
            {"type": "connected", "venue_id": venue_id, "timestamp": utcnow().isoformat()},
            event="connected",
        )
        while True:
            if request is not None and await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(subscriber.queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield format_sse({"type": "heartbeat", "timestamp": utcnow().isoformat()}, event="heartbeat")
                continue
            yield format_sse(event.to_dict(), event_id=event.id)
    finally:
        hub.unsubscribe(subscriber)


@router.get("/stream")
async def stream_events(
    request: Request,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    # A conexão não fica presa durante a vida do stream.
    db.close()
    return StreamingResponse(
        venue_event_stream(actor.venue_id, request=request),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/recent")
def recent_events(
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_actor),
):
    return [event.to_dict() for event in notification_hub.recent(actor.venue_id, limit=limit)]
