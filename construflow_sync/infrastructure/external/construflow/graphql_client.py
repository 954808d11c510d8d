"""
Cliente GraphQL de Construflow (issues, comentarios e historial).

Requisitos cubiertos:
- autenticacion con tokens flotantes via TokenManager + header X-API-Key
- deteccion de token vencido a mitad de vuelo: invalida y reintenta UNA vez
- reintentos con backoff exponencial para errores de transporte
- paginacion por cursor de issues por proyecto
- fan-out acotado para comentarios/historial (lotes secuenciales)
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Sequence

import httpx
from loguru import logger

from construflow_sync.shared.exceptions.auth import ConstruflowAuthError

from . import queries
from .rest_client import ConstruflowRestClient
from .retry import RetryPolicy
from .token_manager import TokenManager
from .types import GraphQLCredentials, Issue, IssueActivity, Project

ISSUES_PAGE_SIZE = 100
DEFAULT_BATCH_SIZE = 10
PROGRESS_LOG_EVERY = 500

_AUTH_ERROR_MARKERS = ("token", "unauthorized", "expired")


def is_auth_error(payload: Any) -> bool:
    """True si algun mensaje de la lista `errors` menciona token/unauthorized/expired."""
    if not isinstance(payload, dict):
        return False
    for error in payload.get("errors") or []:
        message = error.get("message") if isinstance(error, dict) else None
        if message and any(marker in str(message).lower() for marker in _AUTH_ERROR_MARKERS):
            return True
    return False


def _to_int(value: Any) -> Any:
    """Los ids viajan como Int! en las queries; el REST los entrega como string."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def chunk(items: Sequence[Any], size: int) -> list[list[Any]]:
    if size < 1:
        raise ValueError("size debe ser >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class ConstruflowGraphQLClient:
    """
    Cliente GraphQL autenticado.

    El cache de tokens vive en el TokenManager inyectado; este cliente solo
    le pide tokens y le avisa cuando hay que invalidarlos.
    """

    def __init__(
        self,
        credentials: GraphQLCredentials,
        token_manager: TokenManager,
        *,
        graphql_url: str = "https://api.construflow.com.br/graphql",
        http_client: Optional[httpx.AsyncClient] = None,
        rest_client: Optional[ConstruflowRestClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout_s: float = 120.0,
        page_delay_s: float = 0.1,
        batch_delay_s: float = 0.5,
        sleep=asyncio.sleep,
    ) -> None:
        self._creds = credentials
        self._tokens = token_manager
        self._graphql_url = graphql_url
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_http = http_client is None
        self._rest = rest_client
        self._retry = retry_policy or RetryPolicy(max_attempts=3)
        self._page_delay_s = page_delay_s
        self._batch_delay_s = batch_delay_s
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Transporte
    # ------------------------------------------------------------------

    async def execute(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Ejecuta una query autenticada y retorna el payload ({data, errors}).

        Si el servidor responde con un error de token, se invalida el cache y
        se reintenta exactamente una vez; el segundo payload se retorna tal cual.
        """
        token = await self._tokens.get_valid_token(self._creds)
        payload = await self._retry.call(self._post, query, variables, token)

        if is_auth_error(payload):
            logger.warning("Token vencido durante la consulta, renovando...")
            self._tokens.invalidate()
            token = await self._tokens.get_valid_token(self._creds)
            payload = await self._retry.call(self._post, query, variables, token)

        return payload

    async def _post(self, query: str, variables: Optional[dict[str, Any]], token: str) -> dict[str, Any]:
        response = await self._http.post(
            self._graphql_url,
            json={"query": query, "variables": variables or {}},
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {token}",
                "X-API-Key": self._creds.api_key,
            },
        )
        # 5xx es transporte (se reintenta); 4xx suele traer `errors` GraphQL
        if response.status_code >= 500:
            response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            return {"errors": [{"message": f"Respuesta GraphQL invalida (HTTP {response.status_code})"}]}
        return payload

    # ------------------------------------------------------------------
    # Proyectos e issues
    # ------------------------------------------------------------------

    async def fetch_projects(self) -> list[Project]:
        """
        Lista de proyectos via REST (el GraphQL no tiene query para listar todos).
        """
        if self._rest is None:
            raise RuntimeError("fetch_projects requiere un ConstruflowRestClient")

        logger.info("Buscando lista de proyectos via REST...")
        rows = await self._rest.fetch_records("projects", stringify=False)
        projects = [p for p in (Project.from_row(row) for row in rows) if p is not None]
        if not projects:
            logger.warning("Ningun proyecto encontrado")
        else:
            logger.info(f"   {len(projects)} proyectos encontrados")
        return projects

    async def fetch_project_issues(self, project_id: Any) -> list[Issue]:
        """
        Trae todas las issues de un proyecto paginando por cursor.

        Un error de query corta la paginacion y conserva lo acumulado.
        """
        logger.info(f"Buscando issues del proyecto {project_id} via GraphQL...")

        issues: list[Issue] = []
        has_next_page = True
        after_cursor: Optional[str] = None
        page_count = 0

        while has_next_page:
            page_count += 1
            logger.debug(f"   Pagina {page_count}...")

            result = await self.execute(
                queries.PROJECT_ISSUES,
                {"projectId": _to_int(project_id), "first": ISSUES_PAGE_SIZE, "after": after_cursor},
            )

            if result.get("errors"):
                logger.error(f"Error en la query de issues del proyecto {project_id}: {json.dumps(result['errors'])}")
                break

            connection = ((result.get("data") or {}).get("project") or {}).get("issues") or {}
            for node in connection.get("issues") or []:
                try:
                    issues.append(Issue.from_payload(node, project_id=project_id))
                except (ValueError, AttributeError) as e:
                    logger.warning(f"Issue descartada en el proyecto {project_id}: {e}")

            page_info = connection.get("pageInfo") or {}
            has_next_page = bool(page_info.get("hasNextPage"))
            after_cursor = page_info.get("endCursor")

            if has_next_page:
                await self._sleep(self._page_delay_s)

        logger.info(f"   {len(issues)} issues encontradas")
        return issues

    # ------------------------------------------------------------------
    # Comentarios e historial
    # ------------------------------------------------------------------

    async def fetch_issue_activity(self, project_id: Any, issue_id: Any) -> IssueActivity:
        """Comentarios + historial de una issue. Error de query -> actividad vacia."""
        result = await self.execute(
            queries.ISSUE_DETAILS,
            {"projectId": _to_int(project_id), "issueId": _to_int(issue_id)},
        )

        if result.get("errors"):
            logger.warning(f"Error al buscar comentarios de la issue {issue_id}: {json.dumps(result['errors'])}")
            return IssueActivity.empty(issue_id=issue_id, project_id=project_id)

        issue = (result.get("data") or {}).get("issue")
        return IssueActivity.from_payload(issue, issue_id=issue_id, project_id=project_id)

    async def fetch_activity_in_parallel(
        self,
        project_id: Any,
        issue_ids: Sequence[Any],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> list[IssueActivity]:
        """
        Fan-out acotado: lotes de `batch_size` en paralelo, lotes en secuencia.

        Una issue que falla no aborta el lote: queda con actividad vacia.
        Un login fallido (ConstruflowAuthError) si se propaga.
        """
        batches = chunk(issue_ids, batch_size)
        logger.info(
            f"Buscando comentarios de {len(issue_ids)} issues en paralelo "
            f"(batch={batch_size}, lotes={len(batches)})..."
        )

        results: list[IssueActivity] = []
        for index, batch in enumerate(batches):
            logger.debug(f"   Lote {index + 1}/{len(batches)} ({len(batch)} issues)...")
            batch_results = await asyncio.gather(
                *(self._safe_fetch_issue_activity(project_id, issue_id) for issue_id in batch)
            )
            results.extend(batch_results)

            if len(results) % PROGRESS_LOG_EVERY < len(batch):
                logger.info(f"   Progreso: {len(results)}/{len(issue_ids)} issues")

            if index < len(batches) - 1:
                await self._sleep(self._batch_delay_s)

        logger.info(f"   {len(results)} issues procesadas")
        return results

    async def _safe_fetch_issue_activity(self, project_id: Any, issue_id: Any) -> IssueActivity:
        try:
            return await self.fetch_issue_activity(project_id, issue_id)
        except ConstruflowAuthError:
            # Login fallido: no tiene sentido seguir con el resto de las issues
            raise
        except Exception as e:
            logger.error(f"Fallo al buscar actividad de la issue {issue_id} (proyecto {project_id}): {e}")
            return IssueActivity.empty(issue_id=issue_id, project_id=project_id)
