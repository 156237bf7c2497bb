"""Cliente HTTP da API da operadora com retry, timeout e logging.

- Retry com backoff exponencial em timeout, erro de conexão, 429 e 5xx
- Status não retentáveis (4xx) falham na hora, com o corpo da resposta
- Nunca logar payloads (endereço, e-mail, telefone) nem tokens
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from lineflow.observability.logging import get_logger

if TYPE_CHECKING:
    from lineflow.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

_SECRET_QUERY_PATTERN = re.compile(r"(token|key|secret|signature)=[^&]+", re.IGNORECASE)


def _sanitize_url(url: str) -> str:
    """Mascara credenciais em query string para logging seguro."""
    return _SECRET_QUERY_PATTERN.sub(r"\1=***", url)


@dataclass
class HttpClientConfig:
    """Configuração do cliente HTTP."""

    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 10.0
    default_headers: dict[str, str] = field(default_factory=dict)
    verify_ssl: bool = True


class HttpError(Exception):
    """Erro de requisição HTTP.

    response_body guarda o JSON (ou texto) devolvido pela operadora
    para diagnóstico; não deve ser logado por inteiro.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable
        self.response_body = response_body


def _is_retryable_status(status_code: int) -> bool:
    """429 ou 5xx permitem retry."""
    return status_code == 429 or 500 <= status_code < 600


def _calculate_backoff(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Backoff exponencial limitado: min(2^attempt * base, max)."""
    return min((2**attempt) * base_seconds, max_seconds)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _log_request_start(method: str, url: str, attempt: int, max_r: int) -> None:
    logger.debug(
        "Executando requisição HTTP",
        extra={
            "method": method,
            "url": _sanitize_url(url),
            "attempt": attempt + 1,
            "max_retries": max_r,
        },
    )


def _log_transient_error(msg: str, method: str, url: str, attempt: int, error: str) -> None:
    logger.warning(
        msg,
        extra={
            "method": method,
            "url": _sanitize_url(url),
            "attempt": attempt + 1,
            "error": error,
        },
    )


def _handle_transient_exception(
    exc: Exception, method: str, url: str, attempt: int
) -> HttpError:
    """Converte timeout/conexão em HttpError retentável; demais propagam."""
    if isinstance(exc, httpx.TimeoutException):
        _log_transient_error("Timeout em requisição HTTP", method, url, attempt, str(exc))
        return HttpError("Timeout", is_retryable=True)

    if isinstance(exc, httpx.TransportError):
        _log_transient_error("Erro de conexão HTTP", method, url, attempt, str(exc))
        return HttpError("Erro de conexão", is_retryable=True)

    logger.error(
        "Erro inesperado em requisição HTTP",
        extra={"method": method, "url": _sanitize_url(url), "error_type": type(exc).__name__},
    )
    raise HttpError(f"Erro inesperado: {type(exc).__name__}") from exc


class HttpClient:
    """Cliente HTTP assíncrono com retry e logging.

    Uso típico:
        async with HttpClient(config) as client:
            response = await client.post(url, json=payload)
    """

    def __init__(self, config: HttpClientConfig | None = None) -> None:
        self._config = config or HttpClientConfig()
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> HttpClientConfig:
        return self._config

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente httpx (lazy loading)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                verify=self._config.verify_ssl,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        *,
        max_retries: int | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Executa requisição com retry automático.

        Raises:
            HttpError: status não retentável ou tentativas esgotadas
        """
        client = await self._get_client()
        retries = self._config.max_retries if max_retries is None else max_retries
        last_error: HttpError | None = None

        for attempt in range(retries + 1):
            _log_request_start(method, url, attempt, retries)
            try:
                response = await client.request(method, url, **kwargs)
            except Exception as exc:
                last_error = _handle_transient_exception(exc, method, url, attempt)
            else:
                if response.is_success:
                    logger.debug(
                        "Requisição HTTP bem-sucedida",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    return response

                body = _response_body(response)
                if not _is_retryable_status(response.status_code):
                    logger.warning(
                        "Requisição HTTP falhou (não retryable)",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    raise HttpError(
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                        is_retryable=False,
                        response_body=body,
                    )
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=True,
                    response_body=body,
                )

            if attempt < retries:
                backoff = _calculate_backoff(
                    attempt, self._config.backoff_base_seconds, self._config.backoff_max_seconds
                )
                logger.info(
                    "Aguardando backoff antes de retry",
                    extra={"backoff_seconds": backoff, "next_attempt": attempt + 2},
                )
                await asyncio.sleep(backoff)

        logger.error(
            "Esgotou tentativas de retry",
            extra={"method": method, "url": _sanitize_url(url), "total_attempts": retries + 1},
        )
        raise last_error or HttpError("Falha após todos os retries")

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(
        self, url: str, json: dict[str, Any] | None = None, **kwargs: Any
    ) -> httpx.Response:
        return await self.request("POST", url, json=json, **kwargs)


def create_http_client(settings: Settings | None = None) -> HttpClient:
    """Factory do cliente HTTP da operadora a partir de Settings."""
    if settings is None:
        from lineflow.config.settings import get_settings

        settings = get_settings()

    config = HttpClientConfig(
        timeout_seconds=float(settings.carrier_request_timeout_seconds),
        max_retries=settings.carrier_max_retries,
        backoff_base_seconds=float(settings.carrier_retry_backoff_seconds),
        backoff_max_seconds=float(settings.carrier_retry_backoff_max_seconds),
        default_headers={
            "User-Agent": f"{settings.service_name}/{settings.version}",
            "content-type": "application/json",
        },
        verify_ssl=not settings.is_development,
    )

    logger.info(
        "Cliente HTTP criado",
        extra={"timeout_seconds": config.timeout_seconds, "max_retries": config.max_retries},
    )
    return HttpClient(config)
