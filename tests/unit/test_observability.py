"""Testes de correlation-id e helpers de logging."""

from __future__ import annotations

import logging

from lineflow.observability.logging import CorrelationIdFilter, mask_id
from lineflow.observability.middleware import _correlation_id, get_correlation_id


def _record() -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)


class TestMaskId:
    def test_truncates(self) -> None:
        assert mask_id("sess-1234567890") == "sess-123..."

    def test_empty_passthrough(self) -> None:
        assert mask_id(None) is None
        assert mask_id("") == ""


class TestCorrelationIdFilter:
    def test_injects_context_correlation_id(self) -> None:
        token = _correlation_id.set("corr-1")
        try:
            record = _record()
            assert CorrelationIdFilter("lineflow").filter(record) is True
        finally:
            _correlation_id.reset(token)

        assert record.correlation_id == "corr-1"  # type: ignore[attr-defined]
        assert record.service == "lineflow"  # type: ignore[attr-defined]

    def test_keeps_explicit_correlation_id(self) -> None:
        record = _record()
        record.correlation_id = "explicit"  # type: ignore[attr-defined]

        CorrelationIdFilter("lineflow").filter(record)

        assert record.correlation_id == "explicit"  # type: ignore[attr-defined]

    def test_default_is_empty(self) -> None:
        assert get_correlation_id() == ""
