"""Catálogo de planos usado no enriquecimento do checkout."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from lineflow.domain.protocols.plan_catalog import PlanCatalogProtocol
from lineflow.infra.carrier_client import CarrierApiClient
from lineflow.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


def extract_plans(response: dict[str, Any]) -> list[dict[str, Any]]:
    """Planos de data.plans (ou plans no topo) da resposta de produtos."""
    data = response.get("data")
    plans = data.get("plans") if isinstance(data, dict) else None
    if plans is None:
        plans = response.get("plans")
    return [plan for plan in plans or [] if isinstance(plan, dict)]


class CarrierPlanCatalog(PlanCatalogProtocol):
    """Planos buscados na operadora com cache por TTL."""

    def __init__(
        self,
        client: CarrierApiClient,
        cache_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._plans: list[dict[str, Any]] | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    async def list_plans(self) -> list[dict[str, Any]]:
        async with self._lock:
            age = self._clock() - self._fetched_at
            if self._plans is not None and age < self._cache_seconds:
                return list(self._plans)

            response = await self._client.fetch_products()
            self._plans = extract_plans(response)
            self._fetched_at = self._clock()
            logger.info("Catálogo de planos atualizado", extra={"plan_count": len(self._plans)})
            return list(self._plans)


class StaticPlanCatalog(PlanCatalogProtocol):
    """Lista fixa de planos (dev/testes)."""

    def __init__(self, plans: list[dict[str, Any]] | None = None) -> None:
        self._plans = list(plans or [])

    async def list_plans(self) -> list[dict[str, Any]]:
        return list(self._plans)
