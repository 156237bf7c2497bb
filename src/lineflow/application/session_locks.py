"""Locks por sessão para serializar read-modify-write de FlowContext/Cart.

Escopo: um processo. Sessões diferentes nunca disputam o mesmo lock.
Locks sem referências ativas são descartados pelo WeakValueDictionary.
"""

from __future__ import annotations

import asyncio
import weakref


class SessionLockRegistry:
    """Registro de asyncio.Lock indexado por session_id."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, session_id: str) -> asyncio.Lock:
        """Retorna o lock da sessão, criando-o se necessário."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
