"""Testes do cliente da API da operadora."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from lineflow.infra.carrier_client import CarrierApiClient
from lineflow.infra.http import HttpError
from tests.helpers.factories import make_settings


def _json_response(body: object, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


@pytest.fixture()
def auth() -> MagicMock:
    provider = MagicMock()
    provider.get_token = AsyncMock(side_effect=["tok-1", "tok-2"])
    return provider


def _client(auth: MagicMock, http: AsyncMock) -> CarrierApiClient:
    settings = make_settings(carrier_api_key="test-api-key")
    return CarrierApiClient(settings, auth, http_client=http)


class TestCarrierApiClient:
    @pytest.mark.asyncio
    async def test_quote_sends_auth_headers(self, auth: MagicMock) -> None:
        http = AsyncMock()
        http.request.return_value = _json_response({"status": "SUCCESS"})

        body = await _client(auth, http).quote({"lines": []})

        assert body == {"status": "SUCCESS"}
        method, url = http.request.await_args.args
        kwargs = http.request.await_args.kwargs
        assert method == "POST"
        assert url.endswith("/apisvc/v0/product/quote")
        assert kwargs["headers"] == {"authorization": "tok-1", "x-api-key": "test-api-key"}
        assert kwargs["json"] == {"lines": []}

    @pytest.mark.asyncio
    async def test_status_path_includes_transaction(self, auth: MagicMock) -> None:
        http = AsyncMock()
        http.request.return_value = _json_response({"status": "SUCCESS"})

        await _client(auth, http).status("tx-1")

        method, url = http.request.await_args.args
        assert method == "GET"
        assert url.endswith("/apisvc/v0/product/status/tx-1")

    @pytest.mark.asyncio
    async def test_401_refreshes_token_and_retries_once(self, auth: MagicMock) -> None:
        """401 invalida o token e repete a chamada uma única vez."""
        http = AsyncMock()
        http.request.side_effect = [
            HttpError("HTTP 401", status_code=401),
            _json_response({"status": "SUCCESS"}),
        ]

        await _client(auth, http).purchase({})

        assert http.request.await_count == 2
        auth.invalidate.assert_called_once()
        assert auth.get_token.await_args.kwargs["force_refresh"] is True
        assert http.request.await_args.kwargs["headers"]["authorization"] == "tok-2"

    @pytest.mark.asyncio
    async def test_second_401_propagates(self, auth: MagicMock) -> None:
        http = AsyncMock()
        http.request.side_effect = [
            HttpError("HTTP 401", status_code=401),
            HttpError("HTTP 401", status_code=401),
        ]

        with pytest.raises(HttpError):
            await _client(auth, http).purchase({})

        assert http.request.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self, auth: MagicMock) -> None:
        http = AsyncMock()
        http.request.side_effect = HttpError("HTTP 404", status_code=404)

        with pytest.raises(HttpError):
            await _client(auth, http).status("tx-x")

        auth.invalidate.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_json_response(self, auth: MagicMock) -> None:
        http = AsyncMock()
        response = _json_response(None)
        response.json.side_effect = ValueError("no json")
        response.text = "<html>"
        http.request.return_value = response

        with pytest.raises(HttpError, match="não é JSON"):
            await _client(auth, http).fetch_products()
