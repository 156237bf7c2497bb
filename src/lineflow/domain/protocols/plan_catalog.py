"""Protocolo de domínio para o catálogo de planos."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class PlanCatalogProtocol(ABC):
    """Lookup somente leitura de planos da operadora."""

    @abstractmethod
    async def list_plans(self) -> list[dict[str, Any]]:
        """Retorna os planos no formato bruto do catálogo (camelCase)."""
        ...
