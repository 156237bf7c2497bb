"""Configuração de logging estruturado (JSON)."""

from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

from lineflow.observability.middleware import get_correlation_id


class CorrelationIdFilter(logging.Filter):
    """Insere correlation_id e service no record de log.

    Importante: nunca adicionar endereço, e-mail, telefone ou tokens nos logs.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        existing = getattr(record, "correlation_id", None)
        record.correlation_id = existing if existing else get_correlation_id()
        record.service = self._service_name
        return True


def configure_logging(level: str, service_name: str) -> None:
    """Configura logging JSON com campos padrão do serviço."""

    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s %(service)s",
        rename_fields={"levelname": "level", "name": "logger"},
    )

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    """Retorna logger simples; o filtro injeta service/correlation_id."""

    return logging.getLogger(name)


def mask_id(value: str | None) -> str | None:
    """Trunca identificadores (session_id, transaction_id) para log."""

    if not value:
        return value
    return value[:8] + "..."
