"""
Casos de uso de la aplicacion.
"""
from .construflow_sync_use_cases import (
    ConstruflowSyncUseCases,
    SyncRun,
    build_sync_use_cases,
    sync_construflow,
)

__all__ = ["ConstruflowSyncUseCases", "SyncRun", "build_sync_use_cases", "sync_construflow"]
