"""Fila offline de mutações do cliente.

Guarda, em ordem, as requisições de escrita que falharam por falta de rede
e as reenvia quando a conexão volta. Cada item tenta no máximo
``max_attempts`` vezes, com espera fixa entre tentativas; depois é
descartado (com log) para não travar os itens seguintes.

Não garante exatamente-uma-vez: se o servidor aplicou a mutação mas a
resposta se perdeu, o item é reenviado. Por isso cada item carrega o
``Idempotency-Key`` gerado na primeira tentativa.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 5.0


class PermanentFailure(Exception):
    """O servidor recusou o item (4xx); reenviar não adianta."""


@dataclass
class QueuedItem:
    operation: str
    method: str
    path: str
    payload: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    enqueued_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    retry_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedItem":
        return cls(
            operation=data["operation"],
            method=data["method"],
            path=data["path"],
            payload=data.get("payload"),
            headers=dict(data.get("headers") or {}),
            id=data["id"],
            enqueued_at=data["enqueued_at"],
            retry_count=int(data.get("retry_count", 0)),
        )


class MemoryStorage:
    def __init__(self) -> None:
        self._items: List[Dict[str, Any]] = []

    def load(self) -> List[Dict[str, Any]]:
        return [dict(item) for item in self._items]

    def save(self, items: List[Dict[str, Any]]) -> None:
        self._items = [dict(item) for item in items]


class JsonFileStorage:
    """Persiste a fila num arquivo JSON; sobrevive a reinícios do processo."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Retry queue storage unreadable path=%s; starting empty", self.path)
            return []
        return data if isinstance(data, list) else []

    def save(self, items: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self.path)


class RetryQueue:
    def __init__(
        self,
        sender: Optional[Callable[[QueuedItem], Any]] = None,
        *,
        storage: Any = None,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        online: bool = True,
        background: bool = False,
    ) -> None:
        self.sender = sender
        self.storage = storage or MemoryStorage()
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.background = background
        self._online = online
        self._items: List[QueuedItem] = [QueuedItem.from_dict(item) for item in self.storage.load()]
        self._lock = threading.RLock()
        self._drain_lock = threading.Lock()

    @property
    def online(self) -> bool:
        return self._online

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def items(self) -> List[QueuedItem]:
        with self._lock:
            return list(self._items)

    def status(self) -> Dict[str, Any]:
        return {
            "online": self._online,
            "pending": self.size,
            "draining": self._drain_lock.locked(),
        }

    def _persist(self) -> None:
        self.storage.save([asdict(item) for item in self._items])

    def enqueue(
        self,
        operation: str,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> QueuedItem:
        if method.upper() == "GET":
            raise ValueError("Somente mutações entram na fila offline")
        item = QueuedItem(
            operation=operation,
            method=method.upper(),
            path=path,
            payload=payload,
            headers=dict(headers or {}),
        )
        with self._lock:
            self._items.append(item)
            self._persist()
        logger.info("Request queued offline id=%s operation=%s pending=%s", item.id, operation, self.size)
        if self._online:
            self._trigger_drain()
        return item

    def remove(self, item_id: str) -> bool:
        with self._lock:
            before = len(self._items)
            self._items = [item for item in self._items if item.id != item_id]
            removed = len(self._items) != before
            if removed:
                self._persist()
        return removed

    def clear(self) -> None:
        with self._lock:
            self._items = []
            self._persist()

    def set_online(self, online: bool) -> None:
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Connectivity restored; draining %s queued requests", self.size)
            self._trigger_drain()

    def _trigger_drain(self) -> None:
        if self.background:
            threading.Thread(target=self.drain, name="comanda-retry-queue", daemon=True).start()
        else:
            self.drain()

    def _head(self) -> Optional[QueuedItem]:
        with self._lock:
            return self._items[0] if self._items else None

    def _drop_head(self, item: QueuedItem) -> None:
        with self._lock:
            if self._items and self._items[0].id == item.id:
                self._items.pop(0)
                self._persist()

    def drain(self) -> int:
        """Envia os itens em ordem; devolve quantos foram entregues.

        Só um drain roda por vez; chamadas concorrentes retornam 0 na hora.
        """
        if self.sender is None:
            raise RuntimeError("RetryQueue sem sender configurado")
        if not self._drain_lock.acquire(blocking=False):
            return 0

        delivered = 0
        try:
            while self._online:
                item = self._head()
                if item is None:
                    break
                try:
                    self.sender(item)
                except PermanentFailure as exc:
                    logger.warning(
                        "Queued request rejected by server; dropping id=%s operation=%s error=%s",
                        item.id,
                        item.operation,
                        exc,
                    )
                    self._drop_head(item)
                    continue
                except Exception as exc:
                    with self._lock:
                        item.retry_count += 1
                        self._persist()
                    if item.retry_count >= self.max_attempts:
                        logger.warning(
                            "Queued request dropped after %s attempts id=%s operation=%s error=%s",
                            item.retry_count,
                            item.id,
                            item.operation,
                            exc,
                        )
                        self._drop_head(item)
                        continue
                    logger.info(
                        "Queued request failed id=%s attempt=%s/%s; retrying in %ss",
                        item.id,
                        item.retry_count,
                        self.max_attempts,
                        self.retry_delay,
                    )
                    self.sleep(self.retry_delay)
                    continue

                self._drop_head(item)
                delivered += 1
                logger.info("Queued request delivered id=%s operation=%s", item.id, item.operation)
        finally:
            self._drain_lock.release()
        return delivered
