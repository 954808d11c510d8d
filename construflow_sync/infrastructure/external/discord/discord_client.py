"""
Cliente para notificar el resultado del sync via webhook de Discord.
"""
from typing import Optional

import httpx
from loguru import logger

from construflow_sync.shared.utils.datetime_utils import DateTimeUtils

SUCCESS_COLOR = 0x00FF00
ERROR_COLOR = 0xFF0000


class DiscordNotifier:
    """
    Envia un embed (titulo/descripcion/color/timestamp) a un webhook.

    Sin estado: una falla de envio se loguea y nunca se propaga.
    """

    def __init__(
        self,
        webhook_url: str = "",
        thread_id: str = "",
        *,
        title_prefix: str = "Construflow Sync",
        footer: str = "Construflow Sync - Job",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.thread_id = thread_id
        self.title_prefix = title_prefix
        self.footer = footer
        self._http = http_client

    def build_payload(self, message: str, is_error: bool = False) -> dict:
        status = "ERROR" if is_error else "Exito"
        return {
            "embeds": [{
                "title": f"{self.title_prefix} - {status}",
                "description": message,
                "color": ERROR_COLOR if is_error else SUCCESS_COLOR,
                "timestamp": DateTimeUtils.to_iso_string(DateTimeUtils.now_utc()),
                "footer": {"text": self.footer},
            }]
        }

    async def send(self, message: str, is_error: bool = False) -> bool:
        """
        Envia la notificacion.

        Args:
            message: Descripcion del embed (markdown de Discord).
            is_error: Rojo/ERROR si True, verde/Exito si False.
        """
        if not self.webhook_url:
            logger.debug("DISCORD_WEBHOOK_URL no configurado. Saltando notificacion.")
            return False

        params = {"thread_id": self.thread_id} if self.thread_id else None
        payload = self.build_payload(message, is_error)

        try:
            if self._http is not None:
                response = await self._http.post(self.webhook_url, params=params, json=payload)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(self.webhook_url, params=params, json=payload)
            response.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"Error al enviar notificacion de Discord: {e}")
            return False
