"""Middlewares de observabilidade."""

from __future__ import annotations

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "x-correlation-id"


def get_correlation_id() -> str:
    """Retorna o correlation_id corrente (ou vazio)."""

    return _correlation_id.get()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Gera ou propaga correlation_id em cada chamada de ferramenta."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        token = _correlation_id.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            _correlation_id.reset(token)

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
