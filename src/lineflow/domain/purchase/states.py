"""Estados canônicos de uma tentativa de checkout.

Fluxo linear com um ponto de desvio (skip_polling) e um laço (POLLING):
INITIAL → VALIDATING → QUOTING → QUOTED → PURCHASING → PURCHASED
→ COMPLETED (sem polling) ou POLLING → {COMPLETED | FAILED | POLLING_TIMEOUT}
"""

from __future__ import annotations

from enum import StrEnum


class PurchaseState(StrEnum):
    """Estados da PurchaseTransaction."""

    INITIAL = "INITIAL"
    """Transação criada; nada enviado à operadora."""

    VALIDATING = "VALIDATING"
    """Validação estrutural do payload de checkout."""

    QUOTING = "QUOTING"
    """Chamada de cotação em andamento (collection 0)."""

    QUOTED = "QUOTED"
    """Cotação obtida com oneTimeCharge.totalOneTimeCost."""

    PURCHASING = "PURCHASING"
    """Chamada de compra com o mesmo client_account_id da cotação."""

    PURCHASED = "PURCHASED"
    """Compra criada; transaction_id conhecido."""

    POLLING = "POLLING"
    """Consultando status até estado terminal ou link de pagamento."""

    # === Terminais ===
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    POLLING_TIMEOUT = "POLLING_TIMEOUT"
    """Tentativas esgotadas; compra existe, status deve ser consultado depois."""


TERMINAL_STATES = frozenset({
    PurchaseState.COMPLETED,
    PurchaseState.FAILED,
    PurchaseState.POLLING_TIMEOUT,
})
"""Estados sem transições automáticas posteriores."""

NON_TERMINAL_STATES = frozenset({
    s for s in PurchaseState if s not in TERMINAL_STATES
})
