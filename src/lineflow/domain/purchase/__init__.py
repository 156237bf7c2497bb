"""Máquina de estados da transação de compra."""

from lineflow.domain.purchase.states import NON_TERMINAL_STATES, TERMINAL_STATES, PurchaseState
from lineflow.domain.purchase.transitions import TRANSITIONS, validate_transition

__all__ = [
    "PurchaseState",
    "TERMINAL_STATES",
    "NON_TERMINAL_STATES",
    "TRANSITIONS",
    "validate_transition",
]
