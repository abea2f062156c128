from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/api/orders",
    "/api/orders/{order_id}",
    "/api/orders/{order_id}/cancel",
    "/api/orders/{order_id}/close",
    "/api/orders/{order_id}/payments",
    "/api/kitchen/tickets",
    "/api/kitchen/tickets/{ticket_id}/advance",
    "/api/kitchen/tickets/{ticket_id}/status",
    "/api/kitchen/stats",
    "/api/events/stream",
    "/api/events/recent",
    "/internal/metrics",
}


def test_api_startup_and_router_registration(monkeypatch):
    from comanda import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        docs_response = client.get("/docs")
        openapi_response = client.get("/openapi.json")
        metrics_response = client.get("/internal/metrics")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "req-123"
    assert docs_response.status_code == 200
    assert openapi_response.status_code == 200
    assert "GET /" in metrics_response.json()["endpoints"]

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)
