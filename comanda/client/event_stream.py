from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

import httpx

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 5.0
STREAM_PATH = "/api/events/stream"


@dataclass
class StreamMessage:
    event: str
    data: Dict[str, Any]
    id: Optional[str] = None

    @property
    def type(self) -> str:
        return str(self.data.get("type") or self.event)


def parse_sse(lines: Iterable[str]) -> Iterator[StreamMessage]:
    event = None
    event_id = None
    data_lines: list[str] = []
    for line in lines:
        if line == "":
            if data_lines:
                raw = "\n".join(data_lines)
                try:
                    data = json.loads(raw)
                except ValueError:
                    data = {"raw": raw}
                yield StreamMessage(event=event or "message", data=data, id=event_id)
            event, event_id, data_lines = None, None, []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "id":
            event_id = value
        elif name == "data":
            data_lines.append(value)


class VenueEventStream:
    """Consome o stream SSE do estabelecimento e reconecta para sempre.

    Em qualquer erro espera ``reconnect_delay`` (fixo) e tenta de novo, até
    ``stop()``. Eventos perdidos durante a queda não são reenviados; quem
    consome deve recarregar os dados ao receber ``connected``.
    """

    def __init__(
        self,
        http: httpx.Client,
        on_event: Callable[[StreamMessage], None],
        *,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        path: str = STREAM_PATH,
    ) -> None:
        self.http = http
        self.on_event = on_event
        self.reconnect_delay = reconnect_delay
        self.path = path
        self.connections = 0
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="comanda-event-stream", daemon=True)
        self._thread.start()
        return self._thread

    def _consume_once(self) -> None:
        with self.http.stream("GET", self.path, timeout=None) as response:
            response.raise_for_status()
            self.connections += 1
            for message in parse_sse(response.iter_lines()):
                if self.stopped:
                    return
                self.on_event(message)

    def run(self) -> None:
        while not self.stopped:
            try:
                self._consume_once()
            except httpx.HTTPError as exc:
                logger.warning("Event stream error; reconnecting in %ss error=%s", self.reconnect_delay, exc)
            else:
                if not self.stopped:
                    logger.info("Event stream closed by server; reconnecting in %ss", self.reconnect_delay)
            if self._stopped.wait(self.reconnect_delay):
                break
