"""Testes da factory de SessionStore."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from lineflow.infra.session_store import create_session_store
from lineflow.infra.session_store_memory import InMemorySessionStore
from lineflow.infra.session_store_redis import RedisSessionStore


def test_memory_backend() -> None:
    assert isinstance(create_session_store("memory"), InMemorySessionStore)


def test_redis_backend_requires_client() -> None:
    with pytest.raises(ValueError, match="client required"):
        create_session_store("redis")


def test_redis_backend() -> None:
    assert isinstance(create_session_store("REDIS", client=MagicMock()), RedisSessionStore)


def test_unknown_backend() -> None:
    with pytest.raises(ValueError, match="Unknown session store backend"):
        create_session_store("firestore")
