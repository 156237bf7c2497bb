"""Contrato de persistência de sessão (FlowContext + Cart).

Separado para manter SRP e permitir reuso entre implementações.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING

from lineflow.domain.protocols.session_store import SessionStoreProtocol

if TYPE_CHECKING:
    from lineflow.domain.cart import Cart
    from lineflow.domain.flow_context import FlowContext


class SessionStoreError(Exception):
    """Erro ao persistir ou recuperar sessão."""

    pass


class SessionStore(SessionStoreProtocol):
    """Contrato abstrato para armazenamento de FlowContext e Cart.

    Responsabilidades:
    - Persistir contexto e carrinho por session_id com TTL
    - Expirar carrinho de forma lazy (apagado ao ser lido após expires_at)
    - Manter o índice da sessão ativa mais recente
    """

    @abstractmethod
    def load_context(self, session_id: str) -> FlowContext | None:
        """Carrega o FlowContext (None se inexistente ou expirado)."""
        ...

    @abstractmethod
    def save_context(self, context: FlowContext, ttl_seconds: int = 7200) -> None:
        """Persiste o FlowContext e marca a sessão como a mais recente.

        Raises:
            SessionStoreError: em caso de falha do backend
        """
        ...

    @abstractmethod
    def delete_context(self, session_id: str) -> bool:
        """Remove o FlowContext. True se existia."""
        ...

    @abstractmethod
    def load_cart(self, session_id: str) -> Cart | None:
        """Carrega o Cart; carrinho expirado é apagado e retorna None."""
        ...

    @abstractmethod
    def save_cart(self, cart: Cart, ttl_seconds: int = 7200) -> None:
        """Persiste o Cart e marca a sessão como a mais recente."""
        ...

    @abstractmethod
    def delete_cart(self, session_id: str) -> bool:
        """Remove o Cart. True se existia."""
        ...

    @abstractmethod
    def last_active_session(self) -> str | None:
        """session_id da última sessão gravada que ainda existe."""
        ...

    @abstractmethod
    def purge_expired(self) -> int:
        """Remove entradas expiradas; retorna quantas foram removidas."""
        ...
