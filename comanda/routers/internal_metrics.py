from __future__ import annotations

from fastapi import APIRouter

from comanda.core.metrics import request_metrics
from comanda.services.notifications import notification_hub

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def endpoint_metrics():
    return {
        "endpoints": request_metrics.snapshot(),
        "sse_subscribers": notification_hub.subscriber_count(),
    }


@router.get("/venues")
def venue_metrics():
    return {"venues": request_metrics.snapshot_per_venue()}
