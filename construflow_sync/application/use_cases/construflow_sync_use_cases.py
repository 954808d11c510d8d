"""
Casos de uso del sync Construflow -> warehouse.

Pipeline de 4 fases secuenciales, cada una con sus fallas contenidas:
1. Issues (GraphQL, por proyecto) + relacion issue-disciplina
2. Comentarios + historial (GraphQL en paralelo; opcional, lento)
3. Lookups (REST): projects, phases, categories, disciplines, locals
4. Relaciones (REST): issues-locals, issues-disciplines

Un error de un proyecto, issue o endpoint se loguea y cuenta como 0.
Solo aborta la corrida: credenciales faltantes (antes de la fase 1), login
fallido o una falla no tolerable del warehouse. En todos los casos el caller
recibe un resumen JSON y se notifica por Discord.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

import httpx
from loguru import logger

from construflow_sync.core.config import Settings, settings as default_settings
from construflow_sync.infrastructure.external.construflow.graphql_client import ConstruflowGraphQLClient
from construflow_sync.infrastructure.external.construflow.rest_client import (
    LOOKUP_ENDPOINTS,
    RELATIONSHIP_ENDPOINTS,
    ConstruflowRestClient,
    endpoint_table_name,
)
from construflow_sync.infrastructure.external.construflow.retry import (
    RetryPolicy,
    is_gateway_timeout,
    is_rest_retryable,
    is_transient_transport_error,
)
from construflow_sync.infrastructure.external.construflow.token_manager import TokenManager
from construflow_sync.infrastructure.external.construflow.types import (
    GraphQLCredentials,
    RestCredentials,
)
from construflow_sync.infrastructure.external.discord.discord_client import DiscordNotifier
from construflow_sync.infrastructure.warehouse.loader import WarehouseLoader
from construflow_sync.shared.exceptions.auth import ConstruflowAuthError
from construflow_sync.shared.exceptions.sync import ConfigurationError
from construflow_sync.shared.utils.datetime_utils import DateTimeUtils


@dataclass
class SyncRun:
    """Estado de una corrida. No se persiste: solo viaja en el resumen."""

    run_id: str
    started_at: datetime
    started_monotonic: float
    stats: dict[str, Any] = field(default_factory=dict)
    outcome: Optional[str] = None  # success, failure
    error: Optional[str] = None

    @classmethod
    def start(cls) -> "SyncRun":
        return cls(
            run_id=uuid.uuid4().hex[:8],
            started_at=DateTimeUtils.now_utc(),
            started_monotonic=time.monotonic(),
            stats={
                "issues": 0,
                "issues_disciplines": 0,
                "projects": 0,
                "comments": 0,
                "history": 0,
                "comments_and_history": 0,
                "lookups": {},
                "relationships": {},
            },
        )

    @property
    def duration_s(self) -> float:
        return time.monotonic() - self.started_monotonic

    def summary(self) -> dict[str, Any]:
        base = {
            "success": self.outcome == "success",
            "runId": self.run_id,
            "timestamp": DateTimeUtils.to_iso_string(DateTimeUtils.now_utc()),
            "duration": DateTimeUtils.format_duration(self.duration_s),
        }
        if self.outcome == "success":
            base["stats"] = self.stats
        else:
            base["error"] = self.error
        return base


class ConstruflowSyncUseCases:
    """
    Orquestador del pipeline Construflow -> warehouse.

    Los clientes se inyectan (ver build_sync_use_cases) para poder testear
    cada fase con dobles.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        token_manager: TokenManager,
        graphql: ConstruflowGraphQLClient,
        rest: ConstruflowRestClient,
        loader: WarehouseLoader,
        notifier: DiscordNotifier,
        http_clients: Optional[list[httpx.AsyncClient]] = None,
        sleep=asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._tokens = token_manager
        self._graphql = graphql
        self._rest = rest
        self._loader = loader
        self._notifier = notifier
        self._http_clients = http_clients or []
        self._sleep = sleep

    async def aclose(self) -> None:
        for client in self._http_clients:
            await client.aclose()

    # =========================================================================
    # Precondiciones
    # =========================================================================

    def _validate_credentials(self, *, require_rest: bool = True) -> None:
        s = self._settings
        missing = [
            name for name, value in (
                ("CONSTRUFLOW_USERNAME", s.CONSTRUFLOW_USERNAME),
                ("CONSTRUFLOW_PASSWORD", s.CONSTRUFLOW_PASSWORD),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError("Credenciales GraphQL no configuradas", missing=missing)

        if require_rest:
            missing = [
                name for name, value in (
                    ("CONSTRUFLOW_API_KEY", s.CONSTRUFLOW_API_KEY),
                    ("CONSTRUFLOW_API_SECRET", s.CONSTRUFLOW_API_SECRET),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError("Credenciales REST no configuradas", missing=missing)

    # =========================================================================
    # Fases
    # =========================================================================

    async def sync_issues(self) -> dict[str, int]:
        """FASE 1: issues de todos los proyectos + relacion issue-disciplina."""
        logger.info("FASE 1: Sincronizando issues via GraphQL...")

        projects = await self._graphql.fetch_projects()
        if not projects:
            logger.warning("Ningun proyecto encontrado")
            return {"issues": 0, "issues_disciplines": 0, "projects": 0}

        issue_rows: list[dict[str, Any]] = []
        discipline_rows: list[dict[str, Any]] = []

        for index, project in enumerate(projects):
            try:
                issues = await self._graphql.fetch_project_issues(project.id)
            except ConstruflowAuthError:
                raise
            except Exception as e:
                logger.error(f"Error al buscar issues del proyecto {project.id}: {e}")
                issues = []

            for issue in issues:
                issue_rows.append(issue.to_row())
                discipline_rows.extend(link.to_row() for link in issue.disciplines)

            # Pausa entre proyectos, haya fallado o no el anterior
            if index < len(projects) - 1:
                await self._sleep(self._settings.PROJECT_DELAY_S)

        issues_inserted = await self._loader.insert(self._settings.ISSUES_TABLE, issue_rows)
        disciplines_inserted = await self._loader.insert(self._settings.ISSUE_DISCIPLINES_TABLE, discipline_rows)

        return {
            "issues": issues_inserted,
            "issues_disciplines": disciplines_inserted,
            "projects": len(projects),
        }

    async def sync_comments_and_history(self, should_sync: bool = True) -> dict[str, int]:
        """
        FASE 2: comentarios + historial de las issues activas.

        Lee las issues desde el warehouse (cargadas en la fase 1 o en una
        corrida anterior), no de memoria.
        """
        if not should_sync:
            logger.info("Sincronizacion de comentarios desactivada (usar sync_comments=true para activarla)")
            return {"comments": 0, "history": 0, "comments_and_history": 0}

        logger.info("FASE 2: Sincronizando comentarios + historial (paralelo)...")

        issues_by_project = await self._loader.fetch_active_issue_ids(self._settings.ISSUES_TABLE)
        if not issues_by_project:
            logger.warning("Ninguna issue activa encontrada")
            return {"comments": 0, "history": 0, "comments_and_history": 0}

        total_issues = sum(len(ids) for ids in issues_by_project.values())
        logger.info(f"   {total_issues} issues activas en {len(issues_by_project)} proyectos")

        comment_rows: list[dict[str, Any]] = []
        history_rows: list[dict[str, Any]] = []

        for project_id, issue_ids in issues_by_project.items():
            logger.info(f"   Proyecto {project_id}: {len(issue_ids)} issues...")
            try:
                activities = await self._graphql.fetch_activity_in_parallel(
                    project_id,
                    issue_ids,
                    batch_size=self._settings.COMMENTS_BATCH_SIZE,
                )
            except ConstruflowAuthError:
                raise
            except Exception as e:
                logger.error(f"Error al buscar comentarios del proyecto {project_id}: {e}")
                continue

            for activity in activities:
                comment_rows.extend(comment.to_row() for comment in activity.comments)
                history_rows.extend(event.to_row() for event in activity.history)

        inserted = await self._loader.insert(self._settings.COMMENTS_TABLE, comment_rows + history_rows)

        return {
            "comments": len(comment_rows),
            "history": len(history_rows),
            "comments_and_history": inserted,
        }

    async def sync_lookups(self) -> dict[str, int]:
        """FASE 3: lookups via REST. Un endpoint caido queda en 0."""
        logger.info("FASE 3: Sincronizando lookups via REST...")

        lookups = await self._rest.fetch_all_lookups(LOOKUP_ENDPOINTS)
        stats: dict[str, int] = {}
        for name, rows in lookups.items():
            stats[name] = await self._loader.insert(name, rows)
        return stats

    async def sync_relationships(self) -> dict[str, int]:
        """FASE 4: tablas de relacion via REST (page size menor)."""
        logger.info("FASE 4: Sincronizando relaciones via REST...")

        relationships = await self._rest.fetch_relationships(RELATIONSHIP_ENDPOINTS)
        stats: dict[str, int] = {}
        for name, rows in relationships.items():
            table_name = endpoint_table_name(name)
            stats[table_name] = await self._loader.insert(table_name, rows)
        return stats

    # =========================================================================
    # Corridas
    # =========================================================================

    async def run(self, sync_comments: Optional[bool] = None) -> dict[str, Any]:
        """
        Corrida completa (4 fases).

        Args:
            sync_comments: override de SYNC_COMMENTS para esta corrida

        Returns:
            {success, runId, timestamp, duration, stats} o
            {success: False, runId, error, timestamp, duration}
        """
        run = SyncRun.start()
        should_sync_comments = self._settings.SYNC_COMMENTS if sync_comments is None else sync_comments

        logger.info("Iniciando sincronizacion Construflow -> warehouse")
        logger.info(f"   Run ID: {run.run_id}")
        logger.info(f"   Sync comentarios: {'SI' if should_sync_comments else 'NO'}")
        logger.info(f"   Timestamp: {DateTimeUtils.to_iso_string(run.started_at)}")

        try:
            self._validate_credentials()

            issues_stats = await self.sync_issues()
            run.stats.update(issues_stats)

            comments_stats = await self.sync_comments_and_history(should_sync_comments)
            run.stats.update(comments_stats)

            run.stats["lookups"] = await self.sync_lookups()
            run.stats["relationships"] = await self.sync_relationships()
        except Exception as e:
            return await self._finish_with_error(run, e, title="Error en la sincronizacion")

        run.outcome = "success"
        duration = DateTimeUtils.format_duration(run.duration_s)
        logger.info(f"Sincronizacion completada en {duration}")
        logger.info(f"   Issues: {run.stats['issues']}")
        logger.info(f"   Comentarios: {run.stats['comments']}")

        await self._notifier.send(
            "**Sincronizacion completada**\n"
            f"• Issues: {run.stats['issues']}\n"
            f"• Comentarios: {run.stats['comments']}\n"
            f"• Duracion: {duration}",
            is_error=False,
        )
        return run.summary()

    async def run_comments_only(self) -> dict[str, Any]:
        """
        Solo la fase 2, forzada. Pensado como job separado sin el limite de
        tiempo de la corrida completa.
        """
        run = SyncRun.start()
        logger.info("Iniciando sincronizacion de comentarios Construflow -> warehouse")
        logger.info(f"   Run ID: {run.run_id}")
        logger.info(f"   Batch size: {self._settings.COMMENTS_BATCH_SIZE}")

        try:
            self._validate_credentials(require_rest=False)
            # Login temprano: si falla, no se toca el warehouse
            await self._tokens.get_valid_token(self._graphql_credentials())
            comments_stats = await self.sync_comments_and_history(True)
        except Exception as e:
            return await self._finish_with_error(run, e, title="Error en la sincronizacion de comentarios")

        run.stats = comments_stats
        run.outcome = "success"
        duration = DateTimeUtils.format_duration(run.duration_s)
        logger.info(
            f"Sincronizacion de comentarios completada en {duration}: "
            f"{comments_stats['comments']} comentarios, {comments_stats['history']} historicos"
        )

        await self._notifier.send(
            "**Sincronizacion de comentarios completada**\n"
            f"• Comentarios: {comments_stats['comments']}\n"
            f"• Historicos: {comments_stats['history']}\n"
            f"• Duracion: {duration}",
            is_error=False,
        )
        return run.summary()

    async def check_connection(self) -> dict[str, Any]:
        """Prueba de conectividad: login GraphQL + listado de projects (REST). No toca el warehouse."""
        result: dict[str, Any] = {"graphql_login": False, "rest_projects": None, "errors": {}}

        try:
            await self._tokens.get_valid_token(self._graphql_credentials())
            result["graphql_login"] = True
            logger.info("GraphQL: login OK")
        except Exception as e:
            result["errors"]["graphql"] = str(e)
            logger.error(f"GraphQL: {e}")

        try:
            projects = await self._rest.fetch_records("projects")
            result["rest_projects"] = len(projects)
            logger.info(f"REST: {len(projects)} proyectos")
        except Exception as e:
            result["errors"]["rest"] = str(e)
            logger.error(f"REST: {e}")

        result["success"] = result["graphql_login"] and result["rest_projects"] is not None
        return result

    def _graphql_credentials(self) -> GraphQLCredentials:
        return graphql_credentials_from(self._settings)

    async def _finish_with_error(self, run: SyncRun, error: Exception, *, title: str) -> dict[str, Any]:
        run.outcome = "failure"
        run.error = str(error)
        duration = DateTimeUtils.format_duration(run.duration_s)

        logger.error(f"Error en la sincronizacion (run {run.run_id}): {error}")
        logger.exception("Detalle del error:")

        await self._notifier.send(
            f"**{title}**\n\n"
            f"```\n{error}\n```\n\n"
            f"Duracion: {duration}\n"
            f"Run ID: {run.run_id}",
            is_error=True,
        )
        return run.summary()


# =============================================================================
# Construccion y entrypoint
# =============================================================================


def graphql_credentials_from(settings: Settings) -> GraphQLCredentials:
    return GraphQLCredentials(
        username=settings.CONSTRUFLOW_USERNAME,
        password=settings.CONSTRUFLOW_PASSWORD,
        api_key=settings.CONSTRUFLOW_GRAPHQL_API_KEY,
    )


def build_sync_use_cases(settings: Settings = default_settings) -> ConstruflowSyncUseCases:
    """
    Constructor "oficial" del pipeline a partir de la configuracion.

    No valida credenciales: eso ocurre al inicio de cada corrida para que la
    falla llegue como resumen JSON + notificacion.
    """
    graphql_http = httpx.AsyncClient(timeout=settings.GRAPHQL_TIMEOUT_S)
    rest_http = httpx.AsyncClient()

    token_manager = TokenManager(
        settings.CONSTRUFLOW_GRAPHQL_URL,
        http_client=graphql_http,
        ttl_seconds=settings.TOKEN_TTL_MINUTES * 60,
    )
    rest = ConstruflowRestClient(
        RestCredentials(api_key=settings.CONSTRUFLOW_API_KEY, api_secret=settings.CONSTRUFLOW_API_SECRET),
        base_url=settings.CONSTRUFLOW_REST_URL,
        template_version=settings.CONSTRUFLOW_TEMPLATE_VERSION,
        connector_version=settings.CONSTRUFLOW_CONNECTOR_VERSION,
        http_client=rest_http,
        request_timeout_s=settings.REST_REQUEST_TIMEOUT_S,
        retry_policy=RetryPolicy(
            max_attempts=settings.REST_MAX_ATTEMPTS,
            retry_on=is_rest_retryable,
            slow_retry_on=is_gateway_timeout,
        ),
        page_delay_s=settings.REST_PAGE_DELAY_S,
    )
    graphql = ConstruflowGraphQLClient(
        graphql_credentials_from(settings),
        token_manager,
        graphql_url=settings.CONSTRUFLOW_GRAPHQL_URL,
        http_client=graphql_http,
        rest_client=rest,
        retry_policy=RetryPolicy(
            max_attempts=settings.GRAPHQL_MAX_ATTEMPTS,
            retry_on=is_transient_transport_error,
        ),
        page_delay_s=settings.GRAPHQL_PAGE_DELAY_S,
        batch_delay_s=settings.COMMENTS_BATCH_DELAY_S,
    )
    loader = WarehouseLoader(
        settings.effective_database_url,
        schema=settings.WAREHOUSE_SCHEMA,
        batch_size=settings.WAREHOUSE_INSERT_BATCH_SIZE,
        strict_truncate=settings.WAREHOUSE_STRICT_TRUNCATE,
    )
    notifier = DiscordNotifier(settings.DISCORD_WEBHOOK_URL, settings.DISCORD_THREAD_ID)

    return ConstruflowSyncUseCases(
        settings=settings,
        token_manager=token_manager,
        graphql=graphql,
        rest=rest,
        loader=loader,
        notifier=notifier,
        http_clients=[graphql_http, rest_http],
    )


def parse_sync_comments(request: Any) -> Optional[bool]:
    """
    Extrae el override `sync_comments` de un request (mapping, DTO o None).

    Acepta bool o string: solo "true" (sin importar mayusculas) activa.
    """
    if request is None:
        return None
    if isinstance(request, Mapping):
        value = request.get("sync_comments")
    else:
        value = getattr(request, "sync_comments", None)

    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


ResponseSink = Callable[[int, dict[str, Any]], Any]


async def sync_construflow(
    request: Any = None,
    response: Optional[ResponseSink] = None,
    *,
    use_cases: Optional[ConstruflowSyncUseCases] = None,
) -> dict[str, Any]:
    """
    Entrypoint unico del sync (HTTP, CLI o scheduler).

    Args:
        request: opcional, con `sync_comments` (bool o "true"/"false")
        response: opcional, callable (status_code, body) que recibe el JSON
        use_cases: instancia ya construida (si no, se construye desde settings)

    Returns:
        El resumen JSON de la corrida.
    """
    owns_use_cases = use_cases is None
    if use_cases is None:
        use_cases = build_sync_use_cases()

    try:
        result = await use_cases.run(sync_comments=parse_sync_comments(request))
    finally:
        if owns_use_cases:
            await use_cases.aclose()

    if response is not None:
        response(200 if result["success"] else 500, result)
    return result
