"""Factory de SessionStore: criação backend-agnóstica."""

from __future__ import annotations

import logging
from typing import Any

from lineflow.infra.session_contract import SessionStore
from lineflow.infra.session_store_memory import InMemorySessionStore
from lineflow.infra.session_store_redis import RedisSessionStore
from lineflow.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


def create_session_store(
    backend: str,
    client: Any | None = None,
    sweep_interval_seconds: int = 1800,
) -> SessionStore:
    """Cria o SessionStore do backend configurado.

    Args:
        backend: "redis" ou "memory"
        client: Cliente Redis (obrigatório se backend="redis")
        sweep_interval_seconds: intervalo da varredura de expirados (memory)

    Raises:
        ValueError: backend inválido ou cliente não fornecido
    """
    backend = backend.lower()
    if backend == "memory":
        logger.warning("Using in-memory session store (dev only)")
        return InMemorySessionStore(sweep_interval_seconds=sweep_interval_seconds)

    if backend == "redis":
        if client is None:
            msg = "client required for redis backend"
            raise ValueError(msg)
        logger.info("Using Redis session store")
        return RedisSessionStore(client)

    msg = f"Unknown session store backend: {backend}"
    raise ValueError(msg)
