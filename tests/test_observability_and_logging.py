import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from comanda.core.logging_setup import JsonFormatter
from comanda.core.metrics import InMemoryRequestMetrics, request_metrics
from comanda.core.request_context import clear_request_context, set_request_context
from comanda.middleware.observability import ObservabilityMiddleware
from comanda.middleware.venue_context import VenueContextMiddleware


def test_metrics_aggregate_per_endpoint_and_venue():
    metrics = InMemoryRequestMetrics()
    metrics.observe("/api/orders", "POST", 201, 10.0, venue_id="1")
    metrics.observe("/api/orders", "POST", 409, 30.0, venue_id="1")

    snapshot = metrics.snapshot()["POST /api/orders"]
    per_venue = metrics.snapshot_per_venue()["1"]

    assert snapshot["total_requests"] == 2
    assert snapshot["error_count"] == 1
    assert snapshot["avg_duration_ms"] == 20.0
    assert per_venue["total_requests"] == 2


def test_middleware_records_venue_from_headers():
    request_metrics.reset()
    app = FastAPI()
    app.add_middleware(ObservabilityMiddleware)
    app.add_middleware(VenueContextMiddleware)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    response = TestClient(app).get("/ping", headers={"X-Venue-ID": "5", "X-User-ID": "7"})

    assert response.headers["X-Request-ID"]
    assert request_metrics.snapshot_per_venue()["5"]["total_requests"] == 1
    request_metrics.reset()


def test_json_formatter_stamps_context_and_masks_secrets():
    set_request_context(request_id="req-1", venue_id="3", user_id="9")
    record = logging.LogRecord("comanda.test", logging.INFO, __file__, 1, "token=abc123 pago %s", ("10.00",), None)
    try:
        payload = json.loads(JsonFormatter("%(message)s").format(record))
    finally:
        clear_request_context()

    assert payload["request_id"] == "req-1"
    assert payload["venue_id"] == "3"
    assert payload["user_id"] == "9"
    assert payload["message"] == "token=*** pago 10.00"
