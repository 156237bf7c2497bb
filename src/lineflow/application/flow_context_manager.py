"""FlowContextManager — único mutador autorizado de FlowContext e Cart.

Todo read-modify-write de uma sessão roda sob o lock da sessão
(SessionLockRegistry). Leituras criam o contexto sob demanda.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from lineflow.application.session_locks import SessionLockRegistry
from lineflow.config.settings import Settings, get_settings
from lineflow.domain.cart import Cart
from lineflow.domain.errors import InvalidArgumentError
from lineflow.domain.flow_context import (
    DERIVED_FIELDS,
    UPDATABLE_FIELDS,
    FlowContext,
    HistoryEntry,
    PurchaseSnapshot,
)
from lineflow.domain.protocols.session_store import SessionStoreProtocol
from lineflow.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")


def _require_session_id(session_id: str | None) -> str:
    if not session_id or not str(session_id).strip():
        raise InvalidArgumentError("session_id is required")
    return session_id


class FlowContextManager:
    """Gerencia o ciclo de vida do FlowContext (e do Cart alinhado a ele)."""

    def __init__(
        self,
        store: SessionStoreProtocol,
        locks: SessionLockRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._locks = locks or SessionLockRegistry()
        self._settings = settings or get_settings()

    @property
    def locks(self) -> SessionLockRegistry:
        return self._locks

    @property
    def store(self) -> SessionStoreProtocol:
        return self._store

    # ------------------------------------------------------------------
    # Acesso interno (chamador já detém o lock)
    # ------------------------------------------------------------------

    def _load_or_create(self, session_id: str) -> tuple[FlowContext, bool]:
        """Contexto da sessão e se ele precisa ser persistido.

        Se o carrinho expirou antes do contexto, as seleções das linhas são
        zeradas para que gate e carrinho continuem de acordo.
        """
        context = self._store.load_context(session_id)
        if context is not None:
            if context.has_selections and self._store.load_cart(session_id) is None:
                context.clear_selections()
                logger.info(
                    "Cart expired; line selections cleared",
                    extra={"session_id": mask_id(session_id), "line_count": context.line_count},
                )
                return context, True
            return context, False
        logger.info("New flow context created", extra={"session_id": mask_id(session_id)})
        return FlowContext(session_id=session_id), True

    def _load_or_create_cart(self, session_id: str) -> Cart:
        cart = self._store.load_cart(session_id)
        if cart is None:
            cart = Cart.new(session_id, ttl_seconds=self._settings.session_ttl_seconds)
        return cart

    def _save_cart(self, cart: Cart) -> None:
        ttl = self._settings.session_ttl_seconds
        cart.refresh_expiry(ttl)
        self._store.save_cart(cart, ttl_seconds=ttl)

    def _persist(self, context: FlowContext) -> None:
        context.touch()
        self._store.save_context(context, ttl_seconds=self._settings.session_ttl_seconds)

    # ------------------------------------------------------------------
    # Leitura
    # ------------------------------------------------------------------

    async def get_or_create(self, session_id: str) -> FlowContext:
        """Retorna o contexto existente ou cria um com line_count=0."""
        session_id = _require_session_id(session_id)
        async with self._locks.lock_for(session_id):
            context, dirty = self._load_or_create(session_id)
            if dirty:
                self._persist(context)
            return context

    async def peek(self, session_id: str) -> FlowContext | None:
        """Contexto existente, sem criar (None se a sessão não começou)."""
        session_id = _require_session_id(session_id)
        async with self._locks.lock_for(session_id):
            return self._store.load_context(session_id)

    async def get_cart(self, session_id: str) -> Cart:
        """Retorna o carrinho da sessão (vazio se inexistente ou expirado)."""
        session_id = _require_session_id(session_id)
        async with self._locks.lock_for(session_id):
            return self._load_or_create_cart(session_id)

    async def get_resume_step(self, session_id: str) -> str | None:
        return (await self.get_or_create(session_id)).resume_step

    async def get_conversation_history(
        self, session_id: str, limit: int | None = None
    ) -> list[HistoryEntry]:
        history = (await self.get_or_create(session_id)).conversation_history
        if limit is not None:
            return history[-limit:] if limit > 0 else []
        return history

    async def get_global_flags(self, session_id: str) -> dict[str, Any]:
        return (await self.get_or_create(session_id)).global_flags()

    # ------------------------------------------------------------------
    # Mutação
    # ------------------------------------------------------------------

    async def update(self, session_id: str | None, changes: dict[str, Any]) -> FlowContext:
        """Aplica merge parcial de campos conhecidos.

        - line_count cresce/encolhe `lines` (e descarta linhas do cart além do novo total)
        - Campos derivados ou desconhecidos → InvalidArgumentError
        """
        session_id = _require_session_id(session_id)

        derived = DERIVED_FIELDS.intersection(changes)
        if derived:
            raise InvalidArgumentError(
                f"Derived fields cannot be set: {', '.join(sorted(derived))}"
            )
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidArgumentError(f"Unknown fields: {', '.join(sorted(unknown))}")

        new_count = changes.get("line_count")
        if "line_count" in changes and (
            isinstance(new_count, bool) or not isinstance(new_count, int) or new_count < 0
        ):
            raise InvalidArgumentError("line_count must be an integer >= 0")

        async with self._locks.lock_for(session_id):
            context, _ = self._load_or_create(session_id)
            merged = context.model_dump(exclude=set(DERIVED_FIELDS))
            merged.update({k: v for k, v in changes.items() if k != "line_count"})
            try:
                updated = FlowContext.model_validate(merged)
            except ValidationError as e:
                raise InvalidArgumentError(f"Invalid flow context update: {e}") from e

            if new_count is not None and new_count != updated.line_count:
                self._apply_line_count(updated, new_count)

            self._persist(updated)
            logger.info(
                "Flow context updated",
                extra={
                    "session_id": mask_id(session_id),
                    "fields": sorted(changes),
                    "line_count": updated.line_count,
                },
            )
            return updated

    def _apply_line_count(self, context: FlowContext, count: int) -> None:
        shrinking = count < context.line_count
        context.resize_lines(count)
        if not shrinking:
            return
        cart = self._store.load_cart(context.session_id)
        if cart is not None:
            cart.truncate(count)
            self._save_cart(cart)

    async def apply(
        self, session_id: str, mutator: Callable[[FlowContext, Cart], T]
    ) -> T:
        """Read-modify-write genérico de contexto + cart sob o lock da sessão.

        Se o mutator levantar exceção nada é persistido.
        """
        session_id = _require_session_id(session_id)
        async with self._locks.lock_for(session_id):
            context, _ = self._load_or_create(session_id)
            cart = self._load_or_create_cart(session_id)
            line_count_before = context.line_count

            result = mutator(context, cart)

            if context.line_count < line_count_before:
                cart.truncate(context.line_count)
            self._persist(context)
            self._save_cart(cart)
            return result

    async def set_resume_step(self, session_id: str, step: str) -> None:
        def _mutate(context: FlowContext) -> None:
            context.resume_step = step

        await self._apply_context(session_id, _mutate)

    async def clear_resume_step(self, session_id: str) -> None:
        def _mutate(context: FlowContext) -> None:
            context.resume_step = None

        await self._apply_context(session_id, _mutate)

    async def update_last_intent(
        self, session_id: str, intent: str | None, action: str | None = None
    ) -> None:
        def _mutate(context: FlowContext) -> None:
            context.last_intent = intent
            if action is not None:
                context.last_action = action

        await self._apply_context(session_id, _mutate)

    async def add_conversation_history(
        self,
        session_id: str,
        intent: str | None,
        action: str | None,
        data: dict[str, Any] | None = None,
    ) -> None:
        entry = HistoryEntry(intent=intent, action=action, data=data or {})
        limit = self._settings.conversation_history_max

        def _mutate(context: FlowContext) -> None:
            context.add_history(entry, limit=limit)

        await self._apply_context(session_id, _mutate)

    async def update_missing_prerequisites(self, session_id: str, missing: list[str]) -> None:
        def _mutate(context: FlowContext) -> None:
            context.missing_prerequisites = list(missing)

        await self._apply_context(session_id, _mutate)

    async def record_purchase(self, session_id: str, snapshot: PurchaseSnapshot) -> None:
        """Grava o último estado conhecido do checkout na sessão."""

        def _mutate(context: FlowContext) -> None:
            context.last_purchase = snapshot
            context.last_action = "checkout"

        await self._apply_context(session_id, _mutate)
        logger.info(
            "Purchase outcome recorded",
            extra={
                "session_id": mask_id(session_id),
                "state": snapshot.state,
                "transaction_id": mask_id(snapshot.transaction_id),
            },
        )

    async def _apply_context(
        self, session_id: str, mutator: Callable[[FlowContext], None]
    ) -> None:
        session_id = _require_session_id(session_id)
        async with self._locks.lock_for(session_id):
            context, _ = self._load_or_create(session_id)
            mutator(context)
            self._persist(context)

    async def reset(self, session_id: str | None) -> bool:
        """Remove contexto e carrinho da sessão (recomeçar do zero)."""
        session_id = _require_session_id(session_id)
        async with self._locks.lock_for(session_id):
            deleted = self._store.delete_context(session_id)
            cart_deleted = self._store.delete_cart(session_id)
        logger.info(
            "Flow context reset",
            extra={
                "session_id": mask_id(session_id),
                "deleted": deleted,
                "cart_deleted": cart_deleted,
            },
        )
        return deleted or cart_deleted
