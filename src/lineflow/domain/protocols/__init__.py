"""Re-exports dos Protocolos de domínio para uso por Application."""

from __future__ import annotations

from lineflow.domain.protocols.plan_catalog import PlanCatalogProtocol
from lineflow.domain.protocols.session_store import SessionStoreProtocol

__all__ = [
    "PlanCatalogProtocol",
    "SessionStoreProtocol",
]
