"""
Configuracion de logging (loguru) compartida por la API y los scripts.
"""
import sys

from loguru import logger

from construflow_sync.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """
    Reemplaza el sink por defecto de loguru.

    - stderr con el nivel LOG_LEVEL
    - archivo rotativo si LOG_FILE esta definido
    """
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)

    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            rotation="500 MB",
            retention="10 days",
            level=settings.LOG_LEVEL,
        )
