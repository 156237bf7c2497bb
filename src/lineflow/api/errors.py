"""Mapeamento de erros de domínio para respostas HTTP."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from lineflow.domain.errors import (
    AuthenticationError,
    FlowError,
    InvalidArgumentError,
    NotFoundError,
    PrerequisiteError,
    PurchaseValidationError,
)
from lineflow.infra.session_contract import SessionStoreError
from lineflow.observability.logging import get_logger
from lineflow.observability.middleware import get_correlation_id

logger: logging.Logger = get_logger(__name__)


def flow_error_status(error: FlowError) -> int:
    """Status HTTP pelo tipo da causa encadeada."""
    cause = error.__cause__
    if isinstance(cause, PurchaseValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(cause, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(cause, AuthenticationError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY


async def _invalid_argument(request: Request, exc: InvalidArgumentError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_argument", "detail": str(exc)},
    )


async def _prerequisite(request: Request, exc: PrerequisiteError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "prerequisite_not_met", "detail": str(exc), "gate": exc.gate.to_dict()},
    )


async def _validation(request: Request, exc: PurchaseValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "detail": str(exc),
            "validation_errors": exc.validation_errors,
        },
    )


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "not_found", "detail": str(exc), "transaction_id": exc.transaction_id},
    )


async def _authentication(request: Request, exc: AuthenticationError) -> JSONResponse:
    logger.error("Carrier authentication unavailable", extra={"status_code": exc.status_code})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "carrier_auth_unavailable", "detail": str(exc)},
    )


async def _flow(request: Request, exc: FlowError) -> JSONResponse:
    code = flow_error_status(exc)
    logger.warning(
        "Purchase flow error returned",
        extra={
            "status_code": code,
            "state": exc.state,
            "error_type": exc.error_type,
            "correlation_id": get_correlation_id(),
        },
    )
    return JSONResponse(status_code=code, content=exc.to_dict())


async def _session_store(request: Request, exc: SessionStoreError) -> JSONResponse:
    logger.error("Session store unavailable", extra={"error": type(exc).__name__})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "session_store_unavailable"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvalidArgumentError, _invalid_argument)  # type: ignore[arg-type]
    app.add_exception_handler(PrerequisiteError, _prerequisite)  # type: ignore[arg-type]
    app.add_exception_handler(PurchaseValidationError, _validation)  # type: ignore[arg-type]
    app.add_exception_handler(NotFoundError, _not_found)  # type: ignore[arg-type]
    app.add_exception_handler(AuthenticationError, _authentication)  # type: ignore[arg-type]
    app.add_exception_handler(FlowError, _flow)  # type: ignore[arg-type]
    app.add_exception_handler(SessionStoreError, _session_store)  # type: ignore[arg-type]
