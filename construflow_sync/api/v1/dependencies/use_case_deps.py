"""
Dependencias para inyeccion de casos de uso.
"""
from typing import AsyncGenerator

from construflow_sync.application.use_cases.construflow_sync_use_cases import (
    ConstruflowSyncUseCases,
    build_sync_use_cases,
)
from construflow_sync.core.config import settings


async def get_sync_use_cases() -> AsyncGenerator[ConstruflowSyncUseCases, None]:
    """
    Dependencia para obtener el orquestador del sync.

    Cada request arma sus propios clientes HTTP (y cache de tokens) y los
    cierra al terminar.

    Yields:
        ConstruflowSyncUseCases: Instancia lista para run()
    """
    use_cases = build_sync_use_cases(settings)
    try:
        yield use_cases
    finally:
        await use_cases.aclose()
