from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import httpx

from comanda.client.retry_queue import PermanentFailure, QueuedItem, RetryQueue

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class QueuedRequest:
    """Retorno de uma mutação que ficou na fila offline."""

    queue_id: str
    operation: str
    idempotency_key: str
    queued: bool = True


class ComandaClient:
    def __init__(
        self,
        base_url: str,
        *,
        venue_id: int,
        user_id: int,
        queue: Optional[RetryQueue] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.venue_id = venue_id
        self.user_id = user_id
        self._http = httpx.Client(
            base_url=base_url,
            headers={"X-Venue-ID": str(venue_id), "X-User-ID": str(user_id)},
            transport=transport,
            timeout=timeout,
        )
        self.queue = queue or RetryQueue()
        self.queue.sender = self._replay

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ComandaClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        response = self._http.request(method, path, json=json, params=params, headers=headers)
        response.raise_for_status()
        return response.json()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        # Leituras nunca vão para a fila: falha de rede sobe para quem chamou.
        data = self._send("GET", path, params={k: v for k, v in (params or {}).items() if v is not None})
        self.queue.set_online(True)
        return data

    def _mutate(self, operation: str, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        headers = {"Idempotency-Key": uuid.uuid4().hex}
        try:
            data = self._send(method, path, json=payload, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("Network failure on %s; queueing request error=%s", operation, exc)
            self.queue.set_online(False)
            item = self.queue.enqueue(operation, method, path, payload=payload, headers=headers)
            return QueuedRequest(queue_id=item.id, operation=operation, idempotency_key=headers["Idempotency-Key"])
        self.queue.set_online(True)
        return data

    def _replay(self, item: QueuedItem) -> Any:
        try:
            return self._send(item.method, item.path, json=item.payload, headers=item.headers)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code < 500:
                raise PermanentFailure(f"{exc.response.status_code}: {exc.response.text}") from exc
            raise

    # Orders

    def create_order(
        self,
        items: Iterable[Dict[str, Any]],
        *,
        code: Optional[str] = None,
        customer_name: Optional[str] = None,
        pay_now: bool = False,
        payment_method: Optional[str] = None,
    ):
        payload: Dict[str, Any] = {"items": list(items), "pay_now": pay_now}
        if code is not None:
            payload["code"] = code
        if customer_name is not None:
            payload["customer_name"] = customer_name
        if payment_method is not None:
            payload["payment_method"] = payment_method
        return self._mutate("create_order", "POST", "/api/orders", payload)

    def cancel_order(self, order_id: int):
        return self._mutate("cancel_order", "POST", f"/api/orders/{order_id}/cancel")

    def close_order(self, order_id: int):
        return self._mutate("close_order", "POST", f"/api/orders/{order_id}/close")

    def update_order(self, order_id: int, **fields: Any):
        return self._mutate("update_order", "PATCH", f"/api/orders/{order_id}", fields)

    def get_order(self, order_id: int) -> Dict[str, Any]:
        return self._get(f"/api/orders/{order_id}")

    def list_orders(self, **filters: Any) -> List[Dict[str, Any]]:
        return self._get("/api/orders", filters)

    # Payments

    def record_payment(self, order_id: int, *, method: str, amount: Decimal | str | float):
        payload = {"method": method, "amount": str(amount)}
        return self._mutate("record_payment", "POST", f"/api/orders/{order_id}/payments", payload)

    def list_payments(self, order_id: int) -> List[Dict[str, Any]]:
        return self._get(f"/api/orders/{order_id}/payments")

    # Kitchen

    def advance_ticket(self, ticket_id: int):
        return self._mutate("advance_ticket", "POST", f"/api/kitchen/tickets/{ticket_id}/advance")

    def set_ticket_status(self, ticket_id: int, status: str):
        return self._mutate(
            "set_ticket_status",
            "PATCH",
            f"/api/kitchen/tickets/{ticket_id}/status",
            {"status": status},
        )

    def list_tickets(self, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        return self._get("/api/kitchen/tickets", {"status": status, "limit": limit})

    def kitchen_stats(self) -> Dict[str, Any]:
        return self._get("/api/kitchen/stats")

    # Events

    def recent_events(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._get("/api/events/recent", {"limit": limit})

    def subscribe_events(self, on_event, **kwargs: Any):
        from comanda.client.event_stream import VenueEventStream

        return VenueEventStream(self._http, on_event, **kwargs)
