"""
Ciclo de vida del par de tokens (access + refresh) del GraphQL de Construflow.

Reglas:
- Token en cache y no vencido -> se reutiliza sin llamada de red.
- Vencido con refresh token -> mutation refreshToken. Si falla, se limpia
  todo el par y se hace login completo.
- Sin cache -> login (signIn) con usuario/password.

El vencimiento se calcula con margen de seguridad: 55 de los 60 minutos de
vida del access token.

No hay lock: login/refresh son idempotentes para quien llama (gana el ultimo
en escribir) y el fan-out del pipeline esta acotado.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

import httpx
from loguru import logger

from construflow_sync.shared.exceptions.auth import ConstruflowAuthError

from . import queries
from .types import GraphQLCredentials, TokenPair


class TokenManager:
    """
    Dueño exclusivo del par de credenciales.

    Se instancia una vez por proceso (o por corrida). El cache solo se expone
    via get_valid_token(); invalidate() centraliza la limpieza.
    """

    def __init__(
        self,
        graphql_url: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        ttl_seconds: float = 55 * 60,
        clock: Callable[[], float] = time.time,
        timeout_s: float = 30.0,
    ) -> None:
        self._graphql_url = graphql_url
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_http = http_client is None
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._tokens: Optional[TokenPair] = None

    async def get_valid_token(self, credentials: GraphQLCredentials) -> str:
        """
        Retorna un access token valido (cache, refresh o login).

        Raises:
            ConstruflowAuthError: si el login falla
        """
        tokens = self._tokens
        if tokens is not None and tokens.expires_at > self._clock():
            return tokens.access_token

        if tokens is not None and tokens.refresh_token:
            new_token = await self._refresh(tokens.refresh_token)
            if new_token:
                return new_token

        return await self._login(credentials)

    def invalidate(self) -> None:
        """Descarta el par completo: la proxima llamada hace login."""
        self._tokens = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _login(self, credentials: GraphQLCredentials) -> str:
        logger.info("Haciendo login en Construflow GraphQL...")

        try:
            response = await self._http.post(
                self._graphql_url,
                json={
                    "query": queries.SIGN_IN,
                    "variables": {
                        "username": credentials.username,
                        "password": credentials.password,
                    },
                },
                headers={"Content-Type": "application/json"},
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ConstruflowAuthError(f"Login fallo: {e}") from e

        if not isinstance(data, dict):
            raise ConstruflowAuthError("Login fallo: respuesta invalida")

        if data.get("errors"):
            raise ConstruflowAuthError(
                "Login fallo: la API retorno errores",
                details={"errors": data["errors"]},
            )

        sign_in = (data.get("data") or {}).get("signIn") or {}
        if not sign_in.get("accessToken"):
            raise ConstruflowAuthError("Login fallo: tokens no retornados")

        self._store(sign_in)
        logger.info("Login realizado con exito")
        return sign_in["accessToken"]

    async def _refresh(self, refresh_token: str) -> Optional[str]:
        logger.info("Renovando access token...")

        try:
            response = await self._http.post(
                self._graphql_url,
                json={"query": queries.REFRESH_TOKEN},
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {refresh_token}",
                },
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Refresh fallo ({e}), se hara login nuevamente")
            self.invalidate()
            return None

        if not isinstance(data, dict):
            data = {}
        refreshed = (data.get("data") or {}).get("refreshToken") or {}
        if data.get("errors") or not refreshed.get("accessToken"):
            logger.warning("Refresh token expirado, se hara login nuevamente")
            self.invalidate()
            return None

        self._store(refreshed)
        logger.info("Token renovado")
        return refreshed["accessToken"]

    def _store(self, payload: dict[str, Any]) -> None:
        # Se reemplaza el par completo en una sola asignacion
        self._tokens = TokenPair(
            access_token=payload["accessToken"],
            refresh_token=payload.get("refreshToken"),
            expires_at=self._clock() + self._ttl_seconds,
        )
