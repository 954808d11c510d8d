"""
Tests unitarios para TokenManager (login, cache y refresh).
"""
from __future__ import annotations

import json

import httpx
import pytest

from construflow_sync.infrastructure.external.construflow.token_manager import TokenManager
from construflow_sync.infrastructure.external.construflow.types import GraphQLCredentials
from construflow_sync.shared.exceptions.auth import ConstruflowAuthError

GRAPHQL_URL = "https://api.test/graphql"
CREDS = GraphQLCredentials(username="user@example.com", password="secret", api_key="k")


class _FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _GraphQLServer:
    """Handler de MockTransport que responde signIn/refreshToken."""

    def __init__(self, *, refresh_ok: bool = True, login_ok: bool = True) -> None:
        self.refresh_ok = refresh_ok
        self.login_ok = login_ok
        self.calls: list[str] = []
        self._counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        query = body["query"]
        self._counter += 1

        if "signIn" in query:
            self.calls.append("login")
            if not self.login_ok:
                return httpx.Response(200, json={"errors": [{"message": "Invalid credentials"}]})
            return httpx.Response(200, json={"data": {"signIn": {
                "accessToken": f"access-{self._counter}",
                "refreshToken": f"refresh-{self._counter}",
            }}})

        if "refreshToken" in query:
            self.calls.append("refresh")
            if not self.refresh_ok:
                return httpx.Response(200, json={"errors": [{"message": "Refresh token expired"}]})
            assert request.headers["Authorization"].startswith("Bearer refresh-")
            return httpx.Response(200, json={"data": {"refreshToken": {
                "accessToken": f"access-{self._counter}",
                "refreshToken": f"refresh-{self._counter}",
            }}})

        raise AssertionError(f"query inesperada: {query}")


def _manager(server: _GraphQLServer, clock: _FakeClock) -> TokenManager:
    http = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return TokenManager(GRAPHQL_URL, http_client=http, ttl_seconds=55 * 60, clock=clock)


class TestTokenManager:
    """Tests para TokenManager."""

    @pytest.mark.asyncio
    async def test_cached_token_does_not_hit_network(self):
        server = _GraphQLServer()
        clock = _FakeClock()
        manager = _manager(server, clock)

        first = await manager.get_valid_token(CREDS)
        clock.now += 54 * 60
        second = await manager.get_valid_token(CREDS)

        assert first == second == "access-1"
        assert server.calls == ["login"]

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self):
        server = _GraphQLServer()
        clock = _FakeClock()
        manager = _manager(server, clock)

        await manager.get_valid_token(CREDS)
        clock.now += 56 * 60
        token = await manager.get_valid_token(CREDS)

        assert token == "access-2"
        assert server.calls == ["login", "refresh"]

    @pytest.mark.asyncio
    async def test_failed_refresh_falls_back_to_login(self):
        server = _GraphQLServer(refresh_ok=False)
        clock = _FakeClock()
        manager = _manager(server, clock)

        await manager.get_valid_token(CREDS)
        clock.now += 56 * 60
        token = await manager.get_valid_token(CREDS)

        assert token == "access-3"
        assert server.calls == ["login", "refresh", "login"]

        # El token obtenido queda en cache y es usable
        assert await manager.get_valid_token(CREDS) == "access-3"
        assert server.calls == ["login", "refresh", "login"]

    @pytest.mark.asyncio
    async def test_invalidate_forces_login(self):
        server = _GraphQLServer()
        manager = _manager(server, _FakeClock())

        await manager.get_valid_token(CREDS)
        manager.invalidate()
        token = await manager.get_valid_token(CREDS)

        assert token == "access-2"
        assert server.calls == ["login", "login"]

    @pytest.mark.asyncio
    async def test_login_errors_raise_auth_error(self):
        server = _GraphQLServer(login_ok=False)
        manager = _manager(server, _FakeClock())

        with pytest.raises(ConstruflowAuthError) as exc_info:
            await manager.get_valid_token(CREDS)

        assert exc_info.value.error_code == "CONSTRUFLOW_AUTH_ERROR"
        assert exc_info.value.details["errors"][0]["message"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_login_without_tokens_raises_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"signIn": None}})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = TokenManager(GRAPHQL_URL, http_client=http)

        with pytest.raises(ConstruflowAuthError, match="tokens no retornados"):
            await manager.get_valid_token(CREDS)

    @pytest.mark.asyncio
    async def test_login_transport_error_raises_auth_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        manager = TokenManager(GRAPHQL_URL, http_client=http)

        with pytest.raises(ConstruflowAuthError, match="Login fallo"):
            await manager.get_valid_token(CREDS)
