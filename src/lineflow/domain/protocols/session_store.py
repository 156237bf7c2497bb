"""Protocolo de domínio para persistência de FlowContext e Cart."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lineflow.domain.cart import Cart
    from lineflow.domain.flow_context import FlowContext


class SessionStoreProtocol(ABC):
    """Contrato mínimo síncrono: sessão → FlowContext e sessão → Cart."""

    @abstractmethod
    def load_context(self, session_id: str) -> FlowContext | None: ...

    @abstractmethod
    def save_context(self, context: FlowContext, ttl_seconds: int = 7200) -> None: ...

    @abstractmethod
    def delete_context(self, session_id: str) -> bool: ...

    @abstractmethod
    def load_cart(self, session_id: str) -> Cart | None: ...

    @abstractmethod
    def save_cart(self, cart: Cart, ttl_seconds: int = 7200) -> None: ...

    @abstractmethod
    def delete_cart(self, session_id: str) -> bool: ...

    @abstractmethod
    def last_active_session(self) -> str | None: ...

    @abstractmethod
    def purge_expired(self) -> int: ...
