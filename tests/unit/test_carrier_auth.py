"""Testes do provedor de token da operadora (cache e single-flight)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from lineflow.domain.errors import AuthenticationError
from lineflow.infra.auth import CarrierAuthProvider, _parse_expiry
from lineflow.infra.http import HttpError
from tests.helpers.factories import make_settings

NOW = 1_700_000_000.0


def _credentials(**overrides):
    values = {
        "carrier_api_key": "test-api-key",
        "carrier_access_key_id": "test-key-id",
        "carrier_access_secret_key": "test-secret",
    }
    values.update(overrides)
    return make_settings(**values)


def _auth_response(token: str = "tok-1", expires_at: float = NOW + 3600, key: str = "expiresAt"):
    response = MagicMock()
    response.json.return_value = {
        "status": "SUCCESS",
        "data": {"authorizationToken": token, key: expires_at},
    }
    return response


def _provider(http: AsyncMock, **settings_overrides) -> CarrierAuthProvider:
    settings = _credentials(**settings_overrides)
    return CarrierAuthProvider(settings, http_client=http, clock=lambda: NOW)


class TestParseExpiry:
    def test_epoch_seconds_and_millis(self) -> None:
        assert _parse_expiry(NOW) == NOW
        assert _parse_expiry(NOW * 1000) == NOW

    def test_iso_string(self) -> None:
        assert _parse_expiry("2023-11-14T22:13:20Z") == NOW


class TestGetToken:
    """Cache, buffer de renovação e invalidação."""

    @pytest.mark.asyncio
    async def test_token_is_cached(self) -> None:
        http = AsyncMock()
        http.post.return_value = _auth_response()
        provider = _provider(http)

        assert await provider.get_token("reach") == "tok-1"
        assert await provider.get_token("reach") == "tok-1"
        assert http.post.await_count == 1

    @pytest.mark.asyncio
    async def test_request_carries_credentials(self) -> None:
        http = AsyncMock()
        http.post.return_value = _auth_response()

        await _provider(http).get_token()

        kwargs = http.post.await_args.kwargs
        assert kwargs["json"] == {
            "accountAccessKeyId": "test-key-id",
            "accountAccessSecreteKey": "test-secret",
        }
        assert kwargs["headers"] == {"x-api-key": "test-api-key"}

    @pytest.mark.asyncio
    async def test_refresh_within_buffer(self) -> None:
        """Token a menos de 20 min de expirar é renovado antes do uso."""
        http = AsyncMock()
        http.post.side_effect = [
            _auth_response("tok-1", NOW + 600),
            _auth_response("tok-2", NOW + 7200),
        ]
        provider = _provider(http)

        assert await provider.get_token() == "tok-1"
        assert await provider.get_token() == "tok-2"

    @pytest.mark.asyncio
    async def test_accepts_misspelt_expiry_field(self) -> None:
        http = AsyncMock()
        http.post.return_value = _auth_response(key="exipiresAt")

        assert await _provider(http).get_token() == "tok-1"

    @pytest.mark.asyncio
    async def test_invalidate_forces_new_token(self) -> None:
        http = AsyncMock()
        http.post.side_effect = [_auth_response("tok-1"), _auth_response("tok-2")]
        provider = _provider(http)

        await provider.get_token("reach")
        provider.invalidate("reach")

        assert await provider.get_token("reach") == "tok-2"

    @pytest.mark.asyncio
    async def test_single_flight(self) -> None:
        """N chamadores concorrentes geram uma única requisição."""
        http = AsyncMock()
        gate = asyncio.Event()

        async def _post(*args, **kwargs):
            await gate.wait()
            return _auth_response()

        http.post.side_effect = _post
        provider = _provider(http)

        waiters = [asyncio.create_task(provider.get_token("reach")) for _ in range(10)]
        await asyncio.sleep(0)
        gate.set()
        tokens = await asyncio.gather(*waiters)

        assert tokens == ["tok-1"] * 10
        assert http.post.await_count == 1


class TestAuthFailures:
    """Falhas viram AuthenticationError."""

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        with pytest.raises(AuthenticationError, match="não configuradas"):
            await _provider(AsyncMock(), carrier_api_key=None).get_token()

    @pytest.mark.asyncio
    async def test_http_failure(self) -> None:
        http = AsyncMock()
        http.post.side_effect = HttpError("HTTP 401", status_code=401)

        with pytest.raises(AuthenticationError) as exc_info:
            await _provider(http).get_token()

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_error_status(self) -> None:
        http = AsyncMock()
        response = MagicMock()
        response.json.return_value = {"status": "FAILURE", "message": "bad key"}
        http.post.return_value = response

        with pytest.raises(AuthenticationError, match="bad key"):
            await _provider(http).get_token()

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self) -> None:
        http = AsyncMock()
        http.post.return_value = _auth_response(expires_at=NOW - 10)

        with pytest.raises(AuthenticationError, match="expired"):
            await _provider(http).get_token()
