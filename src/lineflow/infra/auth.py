"""Token de autorização da API da operadora (cache + refresh single-flight).

- Token em cache por tenant, renovado de forma síncrona quando faltar menos
  que o buffer configurado para expirar
- Chamadores concorrentes aguardam a mesma renovação (asyncio.Task)
- Falhas viram AuthenticationError e sempre propagam
- Nunca logar token, chave de acesso ou x-api-key
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC
from typing import Any

from dateutil.parser import isoparse

from lineflow.config.settings import Settings
from lineflow.domain.enums import API_STATUS_SUCCESS
from lineflow.domain.errors import AuthenticationError
from lineflow.infra.http import HttpClient, HttpClientConfig, HttpError
from lineflow.observability.logging import get_logger
from lineflow.observability.timing import timed

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class CachedToken:
    """Token e instante de expiração (epoch em segundos)."""

    token: str
    expires_at: float

    def seconds_left(self, now: float) -> float:
        return self.expires_at - now


def _parse_expiry(value: Any) -> float:
    """Converte expiresAt (ISO-8601 ou epoch s/ms) em epoch segundos."""
    if isinstance(value, int | float):
        return value / 1000 if value > 1e12 else float(value)
    parsed = isoparse(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


class CarrierAuthProvider:
    """Provedor de token por tenant com refresh single-flight."""

    def __init__(
        self,
        settings: Settings,
        http_client: HttpClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._http = http_client or HttpClient(
            HttpClientConfig(
                timeout_seconds=float(settings.carrier_auth_timeout_seconds),
                max_retries=3,
                backoff_base_seconds=1.0,
                backoff_max_seconds=float(settings.carrier_retry_backoff_max_seconds),
                default_headers={"accept": "*/*", "content-type": "application/json"},
            )
        )
        self._clock = clock
        self._tokens: dict[str, CachedToken] = {}
        self._inflight: dict[str, asyncio.Task[CachedToken]] = {}

    @property
    def buffer_seconds(self) -> int:
        return self._settings.carrier_token_refresh_buffer_seconds

    def _is_fresh(self, cached: CachedToken | None) -> bool:
        return cached is not None and cached.seconds_left(self._clock()) > self.buffer_seconds

    async def get_token(self, tenant: str | None = None, force_refresh: bool = False) -> str:
        """Retorna token válido além da janela de buffer.

        Raises:
            AuthenticationError: se o token não puder ser obtido
        """
        tenant = tenant or self._settings.carrier_tenant
        cached = self._tokens.get(tenant)
        if not force_refresh and self._is_fresh(cached):
            return cached.token  # type: ignore[union-attr]

        task = self._inflight.get(tenant)
        if task is None:
            logger.info(
                "Renovando token da operadora",
                extra={
                    "tenant": tenant,
                    "reason": "force" if force_refresh else ("expiring" if cached else "missing"),
                },
            )
            task = asyncio.create_task(self._refresh(tenant))
            self._inflight[tenant] = task
            task.add_done_callback(lambda t, key=tenant: self._clear_inflight(key, t))
        else:
            logger.debug("Aguardando renovação em andamento", extra={"tenant": tenant})

        # shield: cancelar um chamador não cancela a renovação compartilhada
        fresh = await asyncio.shield(task)
        return fresh.token

    def _clear_inflight(self, tenant: str, task: asyncio.Task[CachedToken]) -> None:
        if self._inflight.get(tenant) is task:
            del self._inflight[tenant]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Renovação de token falhou", extra={"tenant": tenant})

    def invalidate(self, tenant: str | None = None) -> None:
        """Descarta o token em cache (ex.: após 401/403)."""
        tenant = tenant or self._settings.carrier_tenant
        if self._tokens.pop(tenant, None) is not None:
            logger.info("Token da operadora invalidado", extra={"tenant": tenant})

    async def _refresh(self, tenant: str) -> CachedToken:
        settings = self._settings
        if not (
            settings.carrier_api_key
            and settings.carrier_access_key_id
            and settings.carrier_access_secret_key
        ):
            raise AuthenticationError("Credenciais da operadora não configuradas")

        url = settings.carrier_url(settings.carrier_auth_path)
        try:
            with timed("carrier.auth", tenant=tenant):
                response = await self._http.post(
                    url,
                    json={
                        "accountAccessKeyId": settings.carrier_access_key_id,
                        "accountAccessSecreteKey": settings.carrier_access_secret_key,
                    },
                    headers={"x-api-key": settings.carrier_api_key},
                )
            body = response.json()
        except HttpError as e:
            logger.error(
                "Falha HTTP ao gerar token",
                extra={"tenant": tenant, "status_code": e.status_code},
            )
            raise AuthenticationError(
                f"Auth failed ({e.status_code or 'network'})",
                status_code=e.status_code,
                response_body=e.response_body,
            ) from e
        except ValueError as e:
            raise AuthenticationError("Auth response is not valid JSON") from e

        token = self._parse_token(body)
        self._tokens[tenant] = token
        logger.info(
            "Token da operadora renovado",
            extra={
                "tenant": tenant,
                "minutes_until_expiration": int(token.seconds_left(self._clock()) // 60),
            },
        )
        return token

    def _parse_token(self, body: Any) -> CachedToken:
        if not isinstance(body, dict) or body.get("status") != API_STATUS_SUCCESS:
            message = body.get("message") if isinstance(body, dict) else None
            raise AuthenticationError(
                f"Auth failed: {message or 'Unknown error from generateauth'}",
                response_body=body,
            )

        data = body.get("data") or {}
        token = data.get("authorizationToken")
        if not token:
            raise AuthenticationError("Auth response missing token", response_body=body)

        raw_expiry = data.get("expiresAt") or data.get("exipiresAt")
        if not raw_expiry:
            raise AuthenticationError("Auth response missing expiration time", response_body=body)
        try:
            expires_at = _parse_expiry(raw_expiry)
        except (ValueError, OverflowError) as e:
            raise AuthenticationError("Auth response has invalid expiration time") from e
        if expires_at <= self._clock():
            raise AuthenticationError("Auth response has expired expiration time")

        return CachedToken(token=token, expires_at=expires_at)

    async def close(self) -> None:
        await self._http.close()
