"""
Configuración de fixtures para pytest.
"""
from __future__ import annotations

import pytest
from loguru import logger

from construflow_sync.core.config import Settings


class SleepRecorder:
    """Reemplazo de asyncio.sleep: registra las esperas sin esperar."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def loguru_messages():
    """
    Captura los mensajes de loguru (caplog no los ve).
    """
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def make_settings():
    """Settings aislados del .env local, con credenciales de prueba."""

    def _make(**overrides) -> Settings:
        values = {
            "CONSTRUFLOW_USERNAME": "user@example.com",
            "CONSTRUFLOW_PASSWORD": "secret",
            "CONSTRUFLOW_GRAPHQL_API_KEY": "gql-key",
            "CONSTRUFLOW_API_KEY": "rest-key",
            "CONSTRUFLOW_API_SECRET": "rest-secret",
            "DISCORD_WEBHOOK_URL": "",
            "LOG_FILE": "",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make
