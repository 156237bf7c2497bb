from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from lineflow.api.app import create_app
from lineflow.application.flow_context_manager import FlowContextManager
from lineflow.application.purchase.orchestrator import PurchaseOrchestrator
from lineflow.application.tools import FlowToolService
from lineflow.config.settings import Settings, get_settings
from lineflow.infra.plan_catalog import StaticPlanCatalog
from lineflow.infra.session_store_memory import InMemorySessionStore
from tests.helpers.factories import (
    CLIENT_ACCOUNT_ID,
    make_settings,
    purchase_response,
    quote_response,
    status_response,
)


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def manager(store: InMemorySessionStore, settings: Settings) -> FlowContextManager:
    return FlowContextManager(store, settings=settings)


@pytest.fixture()
def carrier() -> AsyncMock:
    """Cliente da operadora falso (quote/purchase/status/fetch_products)."""
    fake = AsyncMock()
    fake.quote.return_value = quote_response()
    fake.purchase.return_value = purchase_response()
    fake.status.return_value = status_response(
        paymentStatus="PENDING", link={"url": "https://pay.example/x", "type": 0}
    )
    fake.fetch_products.return_value = {"data": {"plans": []}}
    return fake


@pytest.fixture()
def orchestrator(carrier: AsyncMock, settings: Settings) -> PurchaseOrchestrator:
    return PurchaseOrchestrator(
        carrier,
        StaticPlanCatalog(),
        settings=settings,
        sleep=AsyncMock(),
        account_id_factory=lambda: CLIENT_ACCOUNT_ID,
    )


@pytest.fixture()
def tools(
    manager: FlowContextManager, orchestrator: PurchaseOrchestrator, settings: Settings
) -> FlowToolService:
    return FlowToolService(manager, orchestrator, settings=settings)


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("SESSION_STORE_BACKEND", "memory")
    get_settings.cache_clear()
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()
