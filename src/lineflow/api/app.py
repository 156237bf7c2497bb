"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI

from lineflow.api.errors import register_error_handlers
from lineflow.api.routes import router
from lineflow.application.flow_context_manager import FlowContextManager
from lineflow.application.purchase import PurchaseOrchestrator
from lineflow.application.tools import FlowToolService
from lineflow.config.settings import Settings, get_settings
from lineflow.infra.auth import CarrierAuthProvider
from lineflow.infra.carrier_client import CarrierApiClient
from lineflow.infra.plan_catalog import CarrierPlanCatalog
from lineflow.infra.session_store import create_session_store
from lineflow.observability.logging import configure_logging, get_logger
from lineflow.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def _create_redis_client(redis_url: str | None) -> redis.Redis | None:
    """Cria cliente Redis se URL disponível."""
    if not redis_url:
        return None
    try:
        return redis.from_url(redis_url, decode_responses=True)
    except (ValueError, redis.RedisError) as e:
        logger.warning("redis_connection_failed", extra={"error": type(e).__name__})
        return None


def create_app(settings: Settings | None = None) -> FastAPI:
    """Cria a aplicação FastAPI."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name)

    validation_errors: list[str] = []
    validation_errors.extend(settings.validate_session_store_config())
    validation_errors.extend(settings.validate_carrier_config())
    validation_errors.extend(settings.validate_purchase_config())

    if validation_errors:
        error_msg = "; ".join(validation_errors)
        raise ValueError(f"Configuração inválida: {error_msg}")

    auth = CarrierAuthProvider(settings)
    carrier_client = CarrierApiClient(settings, auth)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await carrier_client.close()
        await auth.close()
        logger.info("Clientes da operadora encerrados")

    app = FastAPI(title=settings.service_name, version=settings.version, lifespan=lifespan)
    app.add_middleware(CorrelationIdMiddleware)
    register_error_handlers(app)
    app.include_router(router)

    app.state.settings = settings

    backend = settings.session_store_backend.lower()
    if backend == "redis":
        redis_client = _create_redis_client(settings.redis_url)
        if redis_client is None:
            raise ValueError(
                "SESSION_STORE_BACKEND=redis mas REDIS_URL não configurado ou conexão falhou"
            )
        app.state.session_store = create_session_store("redis", client=redis_client)
    else:
        app.state.session_store = create_session_store(
            "memory", sweep_interval_seconds=settings.session_sweep_interval_seconds
        )

    app.state.flow_manager = FlowContextManager(app.state.session_store, settings=settings)
    app.state.auth = auth
    app.state.carrier_client = carrier_client
    app.state.plan_catalog = CarrierPlanCatalog(
        carrier_client, cache_seconds=settings.plan_catalog_cache_seconds
    )
    app.state.orchestrator = PurchaseOrchestrator(
        carrier_client, app.state.plan_catalog, settings=settings
    )
    app.state.tool_service = FlowToolService(
        app.state.flow_manager, app.state.orchestrator, settings=settings
    )

    return app


app = create_app()
