"""
Endpoints para sincronizacion de datos externos.
Permite disparar el sync Construflow -> warehouse (scheduler o manual).
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from loguru import logger

from construflow_sync.api.v1.dependencies.use_case_deps import get_sync_use_cases
from construflow_sync.application.dto.sync_dto import SyncRequestDTO, SyncResultDTO
from construflow_sync.application.use_cases.construflow_sync_use_cases import (
    ConstruflowSyncUseCases,
    sync_construflow,
)


router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post(
    "/construflow",
    response_model=SyncResultDTO,
    status_code=status.HTTP_200_OK,
    summary="Sincronizar Construflow con el warehouse",
    responses={500: {"model": SyncResultDTO, "description": "La corrida fallo"}},
)
async def sync_construflow_endpoint(
    sync_comments: Optional[bool] = Query(
        default=None,
        description="Fuerza (true) u omite (false) la fase de comentarios. Si se omite, usa SYNC_COMMENTS."
    ),
    use_cases: ConstruflowSyncUseCases = Depends(get_sync_use_cases),
) -> JSONResponse:
    """
    Ejecuta una corrida completa del sync.

    La corrida:
    - Fase 1: issues (GraphQL)
    - Fase 2: comentarios + historial (opcional)
    - Fase 3: lookups (REST)
    - Fase 4: relaciones (REST)

    Returns:
        200 con el resumen (stats) o 500 con el resumen de error
    """
    logger.info(f"Iniciando sincronizacion Construflow desde API (sync_comments={sync_comments})")

    captured: Dict[str, Any] = {}

    def respond(status_code: int, body: Dict[str, Any]) -> None:
        captured["status_code"] = status_code
        captured["body"] = body

    await sync_construflow(SyncRequestDTO(sync_comments=sync_comments), respond, use_cases=use_cases)

    return JSONResponse(status_code=captured["status_code"], content=captured["body"])
