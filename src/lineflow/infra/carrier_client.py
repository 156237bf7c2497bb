"""Cliente da API da operadora: quote, purchase, status e catálogo.

Toda chamada obtém o token antes (CarrierAuthProvider.get_token renova
quando o token está dentro do buffer). Em 401/403 o token é invalidado e
a chamada é repetida uma única vez.
"""

from __future__ import annotations

import logging
from typing import Any

from lineflow.config.settings import Settings
from lineflow.infra.auth import CarrierAuthProvider
from lineflow.infra.http import HttpClient, HttpError, create_http_client
from lineflow.observability.logging import get_logger, mask_id
from lineflow.observability.timing import timed

logger: logging.Logger = get_logger(__name__)

_AUTH_STATUSES = frozenset({401, 403})


class CarrierApiClient:
    """Chamadas autenticadas à API da operadora.

    Erros de transporte saem como HttpError (com status e corpo);
    falhas de token saem como AuthenticationError.
    """

    def __init__(
        self,
        settings: Settings,
        auth: CarrierAuthProvider,
        http_client: HttpClient | None = None,
    ) -> None:
        self._settings = settings
        self._auth = auth
        self._http = http_client or create_http_client(settings)
        self._tenant = settings.carrier_tenant

    async def _headers(self, force_refresh: bool = False) -> dict[str, str]:
        token = await self._auth.get_token(self._tenant, force_refresh=force_refresh)
        return {
            "authorization": token,
            "x-api-key": self._settings.carrier_api_key or "",
        }

    async def _call(
        self,
        method: str,
        path: str,
        component: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = self._settings.carrier_url(path)
        kwargs: dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        if params is not None:
            kwargs["params"] = params

        headers = await self._headers()
        try:
            with timed(component, tenant=self._tenant):
                response = await self._http.request(method, url, headers=headers, **kwargs)
        except HttpError as e:
            if e.status_code not in _AUTH_STATUSES:
                raise
            logger.warning(
                "Token rejeitado pela operadora; renovando e repetindo uma vez",
                extra={"component": component, "status_code": e.status_code},
            )
            self._auth.invalidate(self._tenant)
            headers = await self._headers(force_refresh=True)
            with timed(component, tenant=self._tenant, retry=True):
                response = await self._http.request(method, url, headers=headers, **kwargs)

        try:
            body = response.json()
        except ValueError as e:
            raise HttpError(
                "Resposta não é JSON",
                status_code=response.status_code,
                response_body=response.text,
            ) from e
        if not isinstance(body, dict):
            raise HttpError(
                "Resposta JSON inesperada", status_code=response.status_code, response_body=body
            )
        return body

    async def quote(self, request: dict[str, Any]) -> dict[str, Any]:
        return await self._call(
            "POST", self._settings.carrier_quote_path, "carrier.quote", json=request
        )

    async def purchase(self, request: dict[str, Any]) -> dict[str, Any]:
        return await self._call(
            "POST", self._settings.carrier_purchase_path, "carrier.purchase", json=request
        )

    async def status(self, transaction_id: str) -> dict[str, Any]:
        logger.debug("Consultando status", extra={"transaction_id": mask_id(transaction_id)})
        path = f"{self._settings.carrier_status_path.rstrip('/')}/{transaction_id}"
        return await self._call("GET", path, "carrier.status")

    async def fetch_products(self) -> dict[str, Any]:
        return await self._call("GET", self._settings.carrier_products_path, "carrier.products")

    async def close(self) -> None:
        await self._http.close()
