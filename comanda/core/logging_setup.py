from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone

from comanda.core.request_context import get_request_id, get_user_id, get_venue_id

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Campos opcionais copiados do ``extra=`` quando presentes.
_EXTRA_FIELDS = ("endpoint", "method", "status_code", "duration_ms", "order_id", "ticket_id", "operation")

_SENSITIVE_PATTERNS = [
    re.compile(r"(authorization\s*[:=]\s*bearer\s+)([^\s\"]+)", re.IGNORECASE),
    re.compile(r"(token\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"(password\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
    re.compile(r"(secret\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE),
]


def mask_secrets(value: str) -> str:
    for pattern in _SENSITIVE_PATTERNS:
        value = pattern.sub(r"\1***", value)
    return value


class JsonFormatter(logging.Formatter):
    """Uma linha JSON por registro, com o contexto da requisição corrente."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "venue_id": getattr(record, "venue_id", None) or get_venue_id(),
            "user_id": getattr(record, "user_id", None) or get_user_id(),
            "message": mask_secrets(record.getMessage()),
        }
        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = mask_secrets(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None) -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level or LOG_LEVEL)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(level or LOG_LEVEL)
    # uvicorn.access duplicaria a linha do ObservabilityMiddleware
    logging.getLogger("uvicorn.access").propagate = False
