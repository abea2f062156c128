from __future__ import annotations

from fastapi import HTTPException


class DomainError(Exception):
    """Base das falhas de regra de negócio; a mensagem vai para o cliente."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class StateConflictError(DomainError):
    status_code = 409


class FeatureDisabledError(DomainError):
    status_code = 403


def to_http_exception(exc: DomainError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
