"""Testes do registro de locks por sessão."""

from __future__ import annotations

import gc

from lineflow.application.session_locks import SessionLockRegistry


class TestSessionLockRegistry:
    def test_same_session_same_lock(self) -> None:
        registry = SessionLockRegistry()

        assert registry.lock_for("s1") is registry.lock_for("s1")

    def test_sessions_do_not_share_locks(self) -> None:
        registry = SessionLockRegistry()

        assert registry.lock_for("s1") is not registry.lock_for("s2")

    def test_idle_locks_are_released(self) -> None:
        """Locks sem referência saem do registro."""
        registry = SessionLockRegistry()
        held = registry.lock_for("s1")
        registry.lock_for("s2")
        gc.collect()

        assert len(registry) == 1
        assert registry.lock_for("s1") is held
