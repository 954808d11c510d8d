"""
Excepciones relacionadas con autenticación contra Construflow.
"""
from construflow_sync.shared.exceptions.base import AppException


class AuthException(AppException):
    """Excepción base para errores de autenticación."""

    def __init__(self, message: str, error_code: str = "AUTH_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=401,
            error_code=error_code,
            details=details
        )


class ConstruflowAuthError(AuthException):
    """Login en el GraphQL de Construflow falló (credenciales o respuesta sin tokens)."""

    def __init__(self, message: str, details=None):
        super().__init__(
            message=message,
            error_code="CONSTRUFLOW_AUTH_ERROR",
            details=details
        )
