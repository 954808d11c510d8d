"""
Middleware para manejo centralizado de errores.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Ultima red para errores no manejados.

    El endpoint de sync ya convierte sus fallas en un resumen JSON; aqui solo
    llega lo inesperado (p.ej. un bug al construir los clientes).
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            # El traceback va al log; al cliente solo el mensaje generico
            logger.opt(exception=exc).error(f"Error no manejado en {request.method} {request.url.path}")

            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "INTERNAL_SERVER_ERROR",
                    "message": "Ha ocurrido un error interno del servidor",
                    "details": {}
                }
            )
