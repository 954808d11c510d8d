"""
Cliente REST del data-lake de Construflow (lookups y relaciones).

Requisitos cubiertos:
- httpx (async) con Basic auth (API key / secret)
- paginacion por cursor numerico `page[after]`
- timeout duro por request (cancelacion) + reintentos en red/timeout/504
- normalizacion header-row -> registros

Particularidad de la API: la primera fila de cada pagina es un "header"
(objeto donde key == value). Se pide solo en la primera pagina
(`include_header=true`), pero las paginas siguientes lo repiten igual, asi
que se descarta explicitamente antes de acumular.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional

import httpx
from loguru import logger

from construflow_sync.shared.exceptions.sync import ConstruflowApiError

from .retry import RetryPolicy, is_gateway_timeout, is_rest_retryable
from .types import LookupRow, RestCredentials

LOOKUP_ENDPOINTS = ("projects", "phases", "categories", "disciplines", "locals")
RELATIONSHIP_ENDPOINTS = ("issues-locals", "issues-disciplines")

# Endpoints cuyo schema destino es todo STRING (tabla legada)
STRING_SCHEMA_ENDPOINTS = frozenset({"projects"})

DEFAULT_PAGE_SIZE = 1000
RELATIONSHIP_PAGE_SIZE = 500  # menor para evitar timeouts del servidor


def stringify_value(value: Any) -> Optional[str]:
    """bool -> "true"/"false", None -> None, resto -> str()."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def convert_to_records(raw_rows: list[Any], stringify: bool = False) -> list[LookupRow]:
    """
    Convierte la data cruda paginada en registros key/value.

    La primera fila es el header. Soporta los dos formatos de la API:
    - objetos (formato actual): se descarta el header y se usan tal cual
    - arrays (formato viejo): cada fila se zipea con el header
    """
    if not raw_rows or len(raw_rows) < 2:
        return []

    header = raw_rows[0]
    if isinstance(header, dict):
        records = [dict(row) for row in raw_rows[1:] if isinstance(row, dict)]
    else:
        columns = list(header)
        records = [dict(zip(columns, row)) for row in raw_rows[1:]]

    if stringify:
        return [{key: stringify_value(value) for key, value in row.items()} for row in records]
    return records


def endpoint_table_name(endpoint: str) -> str:
    """issues-locals -> issues_locals"""
    return endpoint.replace("-", "_")


class ConstruflowRestClient:
    """
    Cliente HTTP del data-lake. Independiente del TokenManager (otra credencial).
    """

    def __init__(
        self,
        credentials: RestCredentials,
        *,
        base_url: str = "https://api.construflow.com.br/data-lake",
        template_version: str = "9.0.0",
        connector_version: str = "3.0.0",
        http_client: Optional[httpx.AsyncClient] = None,
        request_timeout_s: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        page_delay_s: float = 0.1,
        sleep=asyncio.sleep,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._template_version = template_version
        self._connector_version = connector_version
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None
        self._request_timeout_s = request_timeout_s
        self._retry = retry_policy or RetryPolicy(
            max_attempts=3,
            retry_on=is_rest_retryable,
            slow_retry_on=is_gateway_timeout,
        )
        self._page_delay_s = page_delay_s
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def fetch_endpoint(self, endpoint: str, page_size: int = DEFAULT_PAGE_SIZE) -> list[Any]:
        """
        Trae todas las paginas de un endpoint.

        Retorna la data cruda: la primera fila es el header (de la primera
        pagina); los headers repetidos de las paginas siguientes ya se descartaron.
        """
        logger.info(f"Buscando {endpoint} via REST...")

        all_rows: list[Any] = []
        after_cursor: Any = 0
        page_count = 0
        is_first_page = True

        while True:
            page_count += 1
            params = {
                "templateVersion": self._template_version,
                "connectorVersion": self._connector_version,
                "page[size]": str(page_size),
                "page[after]": str(after_cursor),
                "page[include_header]": "true" if is_first_page else "false",
            }

            try:
                payload = await self._retry.call(self._get_json, endpoint, params)
            except Exception as e:
                logger.error(f"Error al buscar {endpoint} pagina {page_count}: {e}")
                raise

            if not isinstance(payload, dict):
                logger.error(f"Respuesta invalida para {endpoint} (pagina {page_count})")
                break

            page_rows = list(payload.get("data") or [])
            if not is_first_page and page_rows:
                page_rows.pop(0)
            all_rows.extend(page_rows)

            meta = payload.get("meta") or {}
            has_more = bool(meta.get("has_more"))
            if not has_more:
                break

            after_cursor = meta.get("after_cursor")
            if after_cursor is None:
                logger.warning(f"Cursor de paginacion ausente para {endpoint}; se corta en la pagina {page_count}")
                break

            is_first_page = False
            if page_count % 10 == 0:
                logger.info(f"   Pagina {page_count}: {len(all_rows)} registros...")

            await self._sleep(self._page_delay_s)

        logger.info(f"   {endpoint}: {len(all_rows)} registros")
        return all_rows

    async def fetch_records(
        self,
        endpoint: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        stringify: Optional[bool] = None,
    ) -> list[LookupRow]:
        """fetch_endpoint + convert_to_records."""
        if stringify is None:
            stringify = endpoint in STRING_SCHEMA_ENDPOINTS
        raw = await self.fetch_endpoint(endpoint, page_size=page_size)
        return convert_to_records(raw, stringify=stringify)

    async def fetch_all_lookups(
        self, endpoints: Iterable[str] = LOOKUP_ENDPOINTS
    ) -> dict[str, list[LookupRow]]:
        """Lookups chicos. Un endpoint que falla queda como [] sin afectar al resto."""
        logger.info("Buscando lookups via REST...")
        return await self._fetch_many(endpoints, page_size=DEFAULT_PAGE_SIZE)

    async def fetch_relationships(
        self, endpoints: Iterable[str] = RELATIONSHIP_ENDPOINTS
    ) -> dict[str, list[LookupRow]]:
        """Tablas de relacion (pesadas): page size menor."""
        logger.info("Buscando relaciones via REST...")
        return await self._fetch_many(endpoints, page_size=RELATIONSHIP_PAGE_SIZE)

    async def _fetch_many(self, endpoints: Iterable[str], *, page_size: int) -> dict[str, list[LookupRow]]:
        results: dict[str, list[LookupRow]] = {}
        for endpoint in endpoints:
            try:
                results[endpoint] = await self.fetch_records(endpoint, page_size=page_size)
            except Exception as e:
                logger.error(f"Fallo al buscar {endpoint}: {e}")
                results[endpoint] = []
        return results

    async def _get_json(self, endpoint: str, params: dict[str, str]) -> Any:
        """
        Un GET con timeout duro. Status no-2xx -> httpx.HTTPStatusError
        (la politica decide si reintentar: solo 504).
        """
        response = await asyncio.wait_for(
            self._http.get(
                f"{self._base_url}/{endpoint}",
                params=params,
                auth=httpx.BasicAuth(self._creds.api_key, self._creds.api_secret),
                headers={"Content-Type": "application/json"},
            ),
            timeout=self._request_timeout_s,
        )
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise ConstruflowApiError(f"Respuesta no JSON de {endpoint}: {e}", endpoint=endpoint) from e
