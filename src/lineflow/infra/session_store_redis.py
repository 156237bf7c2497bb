"""Implementação de SessionStore usando Redis (produção).

Chaves:
- flow:{session_id}  FlowContext (JSON)
- cart:{session_id}  Cart (JSON), TTL limitado por expires_at
- lineflow:last_active  session_id da última gravação
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from lineflow.domain.cart import Cart
from lineflow.domain.flow_context import FlowContext
from lineflow.infra.session_contract import SessionStore, SessionStoreError
from lineflow.observability.logging import get_logger, mask_id

logger: logging.Logger = get_logger(__name__)

LAST_ACTIVE_KEY = "lineflow:last_active"


def _context_key(session_id: str) -> str:
    return f"flow:{session_id}"


def _cart_key(session_id: str) -> str:
    return f"cart:{session_id}"


def _decode(payload: Any) -> str:
    if isinstance(payload, bytes):
        return payload.decode("utf-8")
    return payload


class RedisSessionStore(SessionStore):
    """Armazenamento em Redis para produção (cliente síncrono redis-py)."""

    def __init__(self, redis_client: Any) -> None:
        self._redis = redis_client

    def _write(self, key: str, session_id: str, ttl_seconds: int, payload: str) -> None:
        try:
            pipe = self._redis.pipeline()
            pipe.setex(key, ttl_seconds, payload)
            pipe.setex(LAST_ACTIVE_KEY, ttl_seconds, session_id)
            pipe.execute()
        except Exception as e:
            logger.error(
                "Failed to save to Redis",
                extra={
                    "key": key.split(":", 1)[0],
                    "session_id": mask_id(session_id),
                    "error": str(e),
                },
            )
            raise SessionStoreError(f"Redis save failed: {e}") from e

    def _read(self, key: str, session_id: str) -> str | None:
        try:
            payload = self._redis.get(key)
        except Exception as e:
            logger.error(
                "Failed to load from Redis",
                extra={
                    "key": key.split(":", 1)[0],
                    "session_id": mask_id(session_id),
                    "error": str(e),
                },
            )
            raise SessionStoreError(f"Redis load failed: {e}") from e
        return _decode(payload) if payload else None

    def _delete(self, key: str, session_id: str) -> bool:
        try:
            return bool(self._redis.delete(key))
        except Exception as e:
            logger.error(
                "Failed to delete from Redis",
                extra={
                    "key": key.split(":", 1)[0],
                    "session_id": mask_id(session_id),
                    "error": str(e),
                },
            )
            raise SessionStoreError(f"Redis delete failed: {e}") from e

    # ------------------------------------------------------------------
    # FlowContext
    # ------------------------------------------------------------------

    def save_context(self, context: FlowContext, ttl_seconds: int = 7200) -> None:
        self._write(
            _context_key(context.session_id),
            context.session_id,
            ttl_seconds,
            context.model_dump_json(),
        )
        logger.debug(
            "Context saved (Redis)",
            extra={"session_id": mask_id(context.session_id), "ttl_seconds": ttl_seconds},
        )

    def load_context(self, session_id: str) -> FlowContext | None:
        payload = self._read(_context_key(session_id), session_id)
        if payload is None:
            return None
        try:
            return FlowContext.model_validate_json(payload)
        except ValidationError as e:
            logger.error(
                "Corrupted flow context in Redis",
                extra={"session_id": mask_id(session_id), "error_count": e.error_count()},
            )
            raise SessionStoreError("Stored flow context is invalid") from e

    def delete_context(self, session_id: str) -> bool:
        return self._delete(_context_key(session_id), session_id)

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    def save_cart(self, cart: Cart, ttl_seconds: int = 7200) -> None:
        remaining = (cart.expires_at - datetime.now(tz=UTC)).total_seconds()
        ttl = max(1, min(ttl_seconds, math.ceil(remaining)))
        self._write(_cart_key(cart.session_id), cart.session_id, ttl, cart.model_dump_json())
        logger.debug(
            "Cart saved (Redis)",
            extra={"session_id": mask_id(cart.session_id), "ttl_seconds": ttl},
        )

    def load_cart(self, session_id: str) -> Cart | None:
        payload = self._read(_cart_key(session_id), session_id)
        if payload is None:
            return None
        try:
            cart = Cart.model_validate_json(payload)
        except ValidationError as e:
            logger.error(
                "Corrupted cart in Redis",
                extra={"session_id": mask_id(session_id), "error_count": e.error_count()},
            )
            raise SessionStoreError("Stored cart is invalid") from e

        if cart.is_expired():
            self._delete(_cart_key(session_id), session_id)
            logger.debug("Cart expired (Redis)", extra={"session_id": mask_id(session_id)})
            return None
        return cart

    def delete_cart(self, session_id: str) -> bool:
        return self._delete(_cart_key(session_id), session_id)

    # ------------------------------------------------------------------
    # Índice e limpeza
    # ------------------------------------------------------------------

    def last_active_session(self) -> str | None:
        session_id = self._read(LAST_ACTIVE_KEY, "last_active")
        if session_id is None:
            return None
        try:
            alive = self._redis.exists(_context_key(session_id), _cart_key(session_id))
        except Exception as e:
            raise SessionStoreError(f"Redis exists failed: {e}") from e
        return session_id if alive else None

    def purge_expired(self) -> int:
        """Redis expira as chaves por TTL; aqui só o ponteiro órfão é limpo."""
        session_id = self._read(LAST_ACTIVE_KEY, "last_active")
        if session_id is None or self.last_active_session() is not None:
            return 0
        self._delete(LAST_ACTIVE_KEY, "last_active")
        logger.info("Stale last-active pointer cleared (Redis)")
        return 1
