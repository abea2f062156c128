from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware

VENUE_HEADER = "X-Venue-ID"
USER_HEADER = "X-User-ID"


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return int(value)


class VenueContextMiddleware(BaseHTTPMiddleware):
    """Lê os cabeçalhos de estabelecimento e operador para request.state.

    A validação (venue existe, está ativo) fica em deps.get_actor.
    """

    async def dispatch(self, request, call_next):
        request.state.venue_id = _parse_int(request.headers.get(VENUE_HEADER))
        request.state.user_id = _parse_int(request.headers.get(USER_HEADER))
        return await call_next(request)
