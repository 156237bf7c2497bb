"""Testes unitários para infra/http.py.

Valida cliente HTTP com retry, timeout e logging.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from lineflow.infra.http import (
    HttpClient,
    HttpClientConfig,
    HttpError,
    _calculate_backoff,
    _is_retryable_status,
    _sanitize_url,
    create_http_client,
)
from tests.helpers.factories import make_settings


def _response(status_code: int, body: object = None) -> MagicMock:
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.json.return_value = body
    response.text = ""
    return response


def _mock_transport(client: HttpClient, **kwargs) -> AsyncMock:
    mock_httpx_client = AsyncMock()
    mock_httpx_client.is_closed = False
    for name, value in kwargs.items():
        setattr(mock_httpx_client.request, name, value)
    client._client = mock_httpx_client
    return mock_httpx_client


class TestHelpers:
    """Testes para helpers de módulo."""

    def test_sanitize_url_masks_key(self) -> None:
        """Deve mascarar api_key na query string."""
        sanitized = _sanitize_url("https://api.example.com?api_key=secret123&other=value")

        assert "secret123" not in sanitized
        assert "api_key=***" in sanitized
        assert "other=value" in sanitized

    def test_sanitize_url_preserves_clean_url(self) -> None:
        url = "https://api.example.com/path"
        assert _sanitize_url(url) == url

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_retryable_statuses(self, status: int) -> None:
        assert _is_retryable_status(status) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_non_retryable_statuses(self, status: int) -> None:
        assert _is_retryable_status(status) is False

    def test_calculate_backoff(self) -> None:
        """Backoff deve ser exponencial e limitado."""
        assert _calculate_backoff(0, 1.0, 10.0) == 1.0
        assert _calculate_backoff(2, 1.0, 10.0) == 4.0
        assert _calculate_backoff(5, 1.0, 10.0) == 10.0


class TestHttpClientAsync:
    """Testes assíncronos para HttpClient."""

    @pytest.mark.asyncio
    async def test_post_with_json(self) -> None:
        """POST deve enviar JSON."""
        client = HttpClient()
        transport = _mock_transport(client, return_value=_response(200))

        await client.post("https://api.example.com", json={"key": "value"})

        transport.request.assert_called_once_with(
            "POST", "https://api.example.com", json={"key": "value"}
        )

    @pytest.mark.asyncio
    async def test_retry_on_5xx(self) -> None:
        """Deve fazer retry em erros 5xx."""
        client = HttpClient(HttpClientConfig(max_retries=2))
        transport = _mock_transport(
            client, side_effect=[_response(500), _response(502), _response(200)]
        )

        with patch("asyncio.sleep", new_callable=AsyncMock):
            response = await client.get("https://api.example.com")

        assert response.status_code == 200
        assert transport.request.call_count == 3

    @pytest.mark.asyncio
    async def test_retry_on_timeout(self) -> None:
        """Timeout é transitório e entra no retry."""
        client = HttpClient(HttpClientConfig(max_retries=1))
        transport = _mock_transport(
            client, side_effect=[httpx.ReadTimeout("slow"), _response(200)]
        )

        with patch("asyncio.sleep", new_callable=AsyncMock):
            response = await client.get("https://api.example.com")

        assert response.status_code == 200
        assert transport.request.call_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_on_4xx_keeps_body(self) -> None:
        """4xx falha na hora com o corpo da resposta."""
        client = HttpClient(HttpClientConfig(max_retries=3))
        transport = _mock_transport(
            client, return_value=_response(400, {"message": "Invalid ZIP"})
        )

        with pytest.raises(HttpError) as exc_info:
            await client.get("https://api.example.com")

        assert exc_info.value.status_code == 400
        assert exc_info.value.is_retryable is False
        assert exc_info.value.response_body == {"message": "Invalid ZIP"}
        assert transport.request.call_count == 1

    @pytest.mark.asyncio
    async def test_exhaust_retries(self) -> None:
        """Deve levantar erro após esgotar retries."""
        client = HttpClient(HttpClientConfig(max_retries=2))
        transport = _mock_transport(client, return_value=_response(503))

        with (
            patch("asyncio.sleep", new_callable=AsyncMock),
            pytest.raises(HttpError) as exc_info,
        ):
            await client.get("https://api.example.com")

        assert exc_info.value.status_code == 503
        assert exc_info.value.is_retryable is True
        assert transport.request.call_count == 3

    @pytest.mark.asyncio
    async def test_close_client(self) -> None:
        """close() deve fechar o cliente httpx."""
        client = HttpClient()
        transport = _mock_transport(client)

        await client.close()

        transport.aclose.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_context_manager_closes(self) -> None:
        client = HttpClient()
        transport = _mock_transport(client)

        async with client as entered:
            assert entered is client

        transport.aclose.assert_called_once()


class TestCreateHttpClient:
    """Testes para factory function create_http_client."""

    def test_creates_client_with_settings(self) -> None:
        settings = make_settings(
            carrier_request_timeout_seconds=60,
            carrier_max_retries=5,
            carrier_retry_backoff_seconds=3,
        )

        client = create_http_client(settings)

        assert client.config.timeout_seconds == 60.0
        assert client.config.max_retries == 5
        assert client.config.backoff_base_seconds == 3.0

    def test_includes_user_agent(self) -> None:
        client = create_http_client(make_settings(service_name="svc", version="1.2.3"))

        assert client.config.default_headers["User-Agent"] == "svc/1.2.3"
