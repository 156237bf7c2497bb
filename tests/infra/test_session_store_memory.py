"""Testes do InMemorySessionStore (contexto, carrinho, índice de última sessão)."""

from __future__ import annotations

import time

from lineflow.domain.cart import Cart
from lineflow.domain.flow_context import FlowContext
from lineflow.infra.session_store_memory import InMemorySessionStore


class ManualClock:
    def __init__(self) -> None:
        self.now = time.time()

    def __call__(self) -> float:
        return self.now


class TestContextStorage:
    """FlowContext em memória."""

    def test_save_and_load(self) -> None:
        store = InMemorySessionStore()
        context = FlowContext(session_id="s1")
        context.resize_lines(2)

        store.save_context(context)
        loaded = store.load_context("s1")

        assert loaded is not None
        assert loaded.line_count == 2

    def test_returns_copies(self) -> None:
        """Mutar o objeto carregado não altera o armazenado."""
        store = InMemorySessionStore()
        store.save_context(FlowContext(session_id="s1"))

        loaded = store.load_context("s1")
        loaded.resize_lines(3)

        assert store.load_context("s1").line_count == 0

    def test_context_expires(self) -> None:
        clock = ManualClock()
        store = InMemorySessionStore(clock=clock)
        store.save_context(FlowContext(session_id="s1"), ttl_seconds=60)

        clock.now += 61

        assert store.load_context("s1") is None

    def test_delete(self) -> None:
        store = InMemorySessionStore()
        store.save_context(FlowContext(session_id="s1"))

        assert store.delete_context("s1") is True
        assert store.delete_context("s1") is False


class TestCartStorage:
    """Carrinho com expiração lazy."""

    def test_expired_cart_treated_as_absent(self) -> None:
        """Carrinho com expires_at no passado é removido na leitura."""
        clock = ManualClock()
        store = InMemorySessionStore(clock=clock)
        store.save_cart(Cart.new("s1", ttl_seconds=60), ttl_seconds=7200)

        clock.now += 120

        assert store.load_cart("s1") is None

    def test_cart_roundtrip(self) -> None:
        store = InMemorySessionStore()
        cart = Cart.new("s1")
        cart.ensure_line(1)
        store.save_cart(cart)

        assert store.load_cart("s1").lines[0].line_number == 1
        assert store.delete_cart("s1") is True


class TestLastActiveAndSweep:
    """Índice de última sessão e varredura."""

    def test_last_active_tracks_latest_write(self) -> None:
        store = InMemorySessionStore()
        store.save_context(FlowContext(session_id="a"))
        store.save_cart(Cart.new("b"))

        assert store.last_active_session() == "b"

    def test_last_active_cleared_when_expired(self) -> None:
        clock = ManualClock()
        store = InMemorySessionStore(clock=clock)
        store.save_context(FlowContext(session_id="a"), ttl_seconds=10)

        clock.now += 11

        assert store.last_active_session() is None

    def test_last_active_empty_store(self) -> None:
        assert InMemorySessionStore().last_active_session() is None

    def test_purge_expired_counts_removed(self) -> None:
        clock = ManualClock()
        store = InMemorySessionStore(clock=clock)
        store.save_context(FlowContext(session_id="a"), ttl_seconds=10)
        store.save_context(FlowContext(session_id="b"), ttl_seconds=1000)
        store.save_cart(Cart.new("a", ttl_seconds=10), ttl_seconds=10)

        clock.now += 20

        assert store.purge_expired() == 2
        assert store.load_context("b") is not None

    def test_periodic_sweep_on_access(self) -> None:
        """Após o intervalo, qualquer acesso varre os expirados."""
        clock = ManualClock()
        store = InMemorySessionStore(sweep_interval_seconds=100, clock=clock)
        store.save_context(FlowContext(session_id="old"), ttl_seconds=10)

        clock.now += 150
        store.load_context("other")

        assert "old" not in store._contexts
