"""Medição de latência das chamadas externas."""

from __future__ import annotations

import contextlib
import time
from collections.abc import Iterator

from lineflow.observability.logging import get_logger

logger = get_logger(__name__)


@contextlib.contextmanager
def timed(component: str, **fields: object) -> Iterator[None]:
    """Mede e loga o tempo decorrido de um componente.

    Uso:
        with timed("carrier.quote", tenant="reach"):
            await client.quote(payload)

    O log `component_latency` sai mesmo quando o bloco levanta exceção.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "component_latency",
            extra={"component": component, "elapsed_ms": round(elapsed_ms, 2), **fields},
        )
