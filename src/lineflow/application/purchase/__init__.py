"""Package `purchase` — checkout contra a API da operadora.

Exports principais:
- CheckoutPayload / CheckoutAddress: dados de entrada do checkout
- PollingOptions: parâmetros de polling e cancelamento
- PurchaseResult / PurchaseTransaction: estado e resultado da transação
- PurchaseOrchestrator: quote → purchase → status (de purchase/orchestrator.py)
"""

from __future__ import annotations

from lineflow.application.purchase.models import (
    CheckoutAddress,
    CheckoutPayload,
    PollingOptions,
    PurchaseResult,
    PurchaseTransaction,
)

__all__ = [
    "CheckoutAddress",
    "CheckoutPayload",
    "PollingOptions",
    "PurchaseResult",
    "PurchaseTransaction",
    "PurchaseOrchestrator",
]


def __getattr__(name: str):
    """Lazy import do orquestrador (evita carregar infra HTTP nos modelos)."""
    if name == "PurchaseOrchestrator":
        from lineflow.application.purchase.orchestrator import PurchaseOrchestrator

        return PurchaseOrchestrator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
