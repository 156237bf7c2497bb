"""Implementação de SessionStore em memória (apenas dev/testes)."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from lineflow.infra.session_contract import SessionStore
from lineflow.observability.logging import get_logger, mask_id

if TYPE_CHECKING:
    from lineflow.domain.cart import Cart
    from lineflow.domain.flow_context import FlowContext

logger: logging.Logger = get_logger(__name__)


class InMemorySessionStore(SessionStore):
    """Armazenamento em memória (não usar em produção).

    Guarda cópias profundas: o chamador nunca compartilha instância com o store.
    """

    def __init__(
        self,
        sweep_interval_seconds: int = 1800,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._contexts: dict[str, tuple[FlowContext, float]] = {}
        self._carts: dict[str, tuple[Cart, float]] = {}
        self._last_active: str | None = None
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._last_sweep = clock()

    def _maybe_sweep(self) -> None:
        if self._clock() - self._last_sweep >= self._sweep_interval:
            self.purge_expired()

    def _cart_expired(self, cart: Cart, expire_at: float, now: float) -> bool:
        return now > expire_at or cart.is_expired(datetime.fromtimestamp(now, tz=UTC))

    # ------------------------------------------------------------------
    # FlowContext
    # ------------------------------------------------------------------

    def save_context(self, context: FlowContext, ttl_seconds: int = 7200) -> None:
        self._maybe_sweep()
        expire_at = self._clock() + ttl_seconds
        self._contexts[context.session_id] = (context.model_copy(deep=True), expire_at)
        self._last_active = context.session_id
        logger.debug(
            "Context saved (in-memory)",
            extra={"session_id": mask_id(context.session_id), "ttl_seconds": ttl_seconds},
        )

    def load_context(self, session_id: str) -> FlowContext | None:
        self._maybe_sweep()
        entry = self._contexts.get(session_id)
        if entry is None:
            return None

        context, expire_at = entry
        if self._clock() > expire_at:
            del self._contexts[session_id]
            logger.debug("Context expired (in-memory)", extra={"session_id": mask_id(session_id)})
            return None
        return context.model_copy(deep=True)

    def delete_context(self, session_id: str) -> bool:
        if self._contexts.pop(session_id, None) is None:
            return False
        logger.debug("Context deleted (in-memory)", extra={"session_id": mask_id(session_id)})
        return True

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    def save_cart(self, cart: Cart, ttl_seconds: int = 7200) -> None:
        self._maybe_sweep()
        expire_at = self._clock() + ttl_seconds
        self._carts[cart.session_id] = (cart.model_copy(deep=True), expire_at)
        self._last_active = cart.session_id
        logger.debug(
            "Cart saved (in-memory)",
            extra={"session_id": mask_id(cart.session_id), "line_count": len(cart.lines)},
        )

    def load_cart(self, session_id: str) -> Cart | None:
        self._maybe_sweep()
        entry = self._carts.get(session_id)
        if entry is None:
            return None

        cart, expire_at = entry
        if self._cart_expired(cart, expire_at, self._clock()):
            del self._carts[session_id]
            logger.debug("Cart expired (in-memory)", extra={"session_id": mask_id(session_id)})
            return None
        return cart.model_copy(deep=True)

    def delete_cart(self, session_id: str) -> bool:
        if self._carts.pop(session_id, None) is None:
            return False
        logger.debug("Cart deleted (in-memory)", extra={"session_id": mask_id(session_id)})
        return True

    # ------------------------------------------------------------------
    # Índice e limpeza
    # ------------------------------------------------------------------

    def last_active_session(self) -> str | None:
        session_id = self._last_active
        if session_id is None:
            return None
        if self.load_context(session_id) is None and self.load_cart(session_id) is None:
            self._last_active = None
            return None
        return session_id

    def purge_expired(self) -> int:
        now = self._clock()
        self._last_sweep = now

        expired_contexts = [sid for sid, (_, exp) in self._contexts.items() if now > exp]
        expired_carts = [
            sid for sid, (cart, exp) in self._carts.items() if self._cart_expired(cart, exp, now)
        ]
        for sid in expired_contexts:
            del self._contexts[sid]
        for sid in expired_carts:
            del self._carts[sid]

        if self._last_active is not None and (
            self._last_active not in self._contexts and self._last_active not in self._carts
        ):
            self._last_active = None

        removed = len(expired_contexts) + len(expired_carts)
        if removed:
            logger.info(
                "Expired sessions purged (in-memory)",
                extra={"contexts": len(expired_contexts), "carts": len(expired_carts)},
            )
        return removed
