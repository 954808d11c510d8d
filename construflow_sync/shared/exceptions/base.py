"""
Excepcion base del sync.

Todas las fallas propias (configuracion, auth, API, warehouse) heredan de
AppException para que la API y el resumen de corrida las rendericen igual.
"""
from typing import Optional, Dict, Any


class AppException(Exception):
    """
    Excepcion base de la aplicacion.

    Args:
        message: Mensaje legible; es lo unico que llega a Discord/al caller
        status_code: Codigo HTTP si la excepcion escapa a la API
        error_code: Codigo estable para clasificar la falla
        details: Contexto adicional (tabla, endpoint, variables faltantes)
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Cuerpo JSON de error: {error, message, details}."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }
