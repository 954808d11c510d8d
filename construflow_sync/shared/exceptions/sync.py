"""
Excepciones del pipeline de sincronización.
"""
from typing import Optional

from construflow_sync.shared.exceptions.base import AppException


class ConfigurationError(AppException):
    """Falta configuración obligatoria (credenciales, DSN). Aborta la corrida."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="CONFIG_ERROR",
            details={"missing": missing} if missing else None
        )


class ConstruflowApiError(AppException):
    """Respuesta inesperada de una API de Construflow."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="CONSTRUFLOW_API_ERROR",
            details={"endpoint": endpoint} if endpoint else None
        )


class WarehouseError(AppException):
    """Error de carga en el warehouse que no se puede tolerar."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="WAREHOUSE_ERROR",
            details={"table": table} if table else None
        )
