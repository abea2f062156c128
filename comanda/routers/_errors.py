from __future__ import annotations

import logging
from contextlib import contextmanager

from fastapi import HTTPException

from comanda.core.errors import DomainError, to_http_exception

logger = logging.getLogger(__name__)


@contextmanager
def domain_errors(action: str):
    """Traduz erros de domínio para HTTP; o resto vira 500 genérico."""
    try:
        yield
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure action=%s", action)
        raise HTTPException(status_code=500, detail="Erro interno ao processar a requisição") from exc
