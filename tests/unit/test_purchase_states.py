"""Testes da máquina de estados da transação de compra."""

from __future__ import annotations

import pytest

from lineflow.application.purchase.models import PurchaseTransaction
from lineflow.domain.purchase import (
    NON_TERMINAL_STATES,
    TERMINAL_STATES,
    PurchaseState,
    validate_transition,
)


class TestValidateTransition:
    def test_linear_path(self) -> None:
        path = [
            PurchaseState.INITIAL,
            PurchaseState.VALIDATING,
            PurchaseState.QUOTING,
            PurchaseState.QUOTED,
            PurchaseState.PURCHASING,
            PurchaseState.PURCHASED,
            PurchaseState.POLLING,
            PurchaseState.COMPLETED,
        ]
        for current, nxt in zip(path, path[1:], strict=False):
            ok, next_state, reason = validate_transition(current, nxt)
            assert ok is True, reason
            assert next_state == nxt

    @pytest.mark.parametrize("state", sorted(NON_TERMINAL_STATES))
    def test_any_non_terminal_can_fail(self, state: PurchaseState) -> None:
        assert validate_transition(state, PurchaseState.FAILED)[0] is True

    @pytest.mark.parametrize("state", sorted(TERMINAL_STATES))
    def test_terminal_states_are_final(self, state: PurchaseState) -> None:
        ok, next_state, reason = validate_transition(state, PurchaseState.POLLING)

        assert ok is False
        assert next_state is None
        assert "Terminal state" in reason

    def test_skipping_quote_not_allowed(self) -> None:
        assert validate_transition(PurchaseState.VALIDATING, PurchaseState.PURCHASING)[0] is False


def test_transaction_advance_rejects_illegal_transition() -> None:
    tx = PurchaseTransaction()

    with pytest.raises(RuntimeError):
        tx.advance(PurchaseState.PURCHASED)
    assert tx.state == PurchaseState.INITIAL
