"""Tabela de transições da PurchaseTransaction.

- TRANSITIONS[current_state] = estados seguintes permitidos
- Estados terminais não aparecem como origem
- Qualquer estado não terminal pode ir para FAILED
- Validação pura: sem side effects
"""

from __future__ import annotations

from lineflow.domain.purchase.states import TERMINAL_STATES, PurchaseState

TRANSITIONS: dict[PurchaseState, frozenset[PurchaseState]] = {
    # INITIAL → POLLING: reentrada apenas por transaction_id (check_status)
    PurchaseState.INITIAL: frozenset({PurchaseState.VALIDATING, PurchaseState.POLLING}),
    PurchaseState.VALIDATING: frozenset({PurchaseState.QUOTING}),
    PurchaseState.QUOTING: frozenset({PurchaseState.QUOTED}),
    PurchaseState.QUOTED: frozenset({PurchaseState.PURCHASING}),
    PurchaseState.PURCHASING: frozenset({PurchaseState.PURCHASED}),
    PurchaseState.PURCHASED: frozenset({PurchaseState.POLLING, PurchaseState.COMPLETED}),
    PurchaseState.POLLING: frozenset({
        PurchaseState.COMPLETED,
        PurchaseState.FAILED,
        PurchaseState.POLLING_TIMEOUT,
    }),
}


def validate_transition(
    current_state: PurchaseState, next_state: PurchaseState
) -> tuple[bool, PurchaseState | None, str]:
    """Valida se uma transição é permitida.

    Retorna:
    - (True, next_state, ""): transição válida
    - (False, None, motivo): transição inválida

    Nunca lança exceção; apenas valida.
    """
    if current_state in TERMINAL_STATES:
        return False, None, f"Terminal state {current_state} has no transitions"

    if next_state == PurchaseState.FAILED:
        return True, next_state, ""

    if next_state not in TRANSITIONS.get(current_state, frozenset()):
        return False, None, f"No transition from {current_state} to {next_state}"

    return True, next_state, ""
