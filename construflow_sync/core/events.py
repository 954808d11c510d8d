"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from loguru import logger

from construflow_sync.core.config import settings
from construflow_sync.core.logging_config import configure_logging


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Configura logging y valida la configuracion."""
        configure_logging(settings)

        logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Entorno: {settings.ENVIRONMENT}")
        logger.info(f"Warehouse schema: {settings.WAREHOUSE_SCHEMA}")

        _validate_config()

        logger.success("Aplicacion iniciada correctamente")

    return startup


def _validate_config() -> None:
    """
    Advierte sobre configuracion faltante.

    No aborta el arranque: la corrida es la que falla con ConfigurationError,
    asi el scheduler recibe el resumen de error y la notificacion.
    """
    warnings = []

    if not settings.CONSTRUFLOW_USERNAME or not settings.CONSTRUFLOW_PASSWORD:
        warnings.append("CONSTRUFLOW_USERNAME/CONSTRUFLOW_PASSWORD no configuradas - el sync fallara")
    if not settings.CONSTRUFLOW_API_KEY or not settings.CONSTRUFLOW_API_SECRET:
        warnings.append("CONSTRUFLOW_API_KEY/CONSTRUFLOW_API_SECRET no configuradas - el sync fallara")
    if not settings.DISCORD_WEBHOOK_URL:
        warnings.append("DISCORD_WEBHOOK_URL no configurada - no se enviaran notificaciones")

    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        # Cada corrida abre y cierra sus propios clientes: no hay nada que liberar
        logger.info("Cerrando aplicacion...")

    return shutdown


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Ciclo de vida de la aplicacion (reemplaza los eventos startup/shutdown).

    Args:
        app: Instancia de FastAPI
    """
    await startup_handler(app)()
    try:
        yield
    finally:
        await shutdown_handler(app)()
