"""
DTOs del sync Construflow -> warehouse.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SyncRequestDTO(BaseModel):
    """Override opcional de la fase de comentarios para una corrida."""

    sync_comments: Optional[bool] = Field(
        None,
        description="Si se omite, se usa SYNC_COMMENTS de la configuracion."
    )


class SyncResultDTO(BaseModel):
    """
    Resumen de una corrida. `stats` solo en exito, `error` solo en falla.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    run_id: str = Field(alias="runId")
    timestamp: str
    duration: str
    stats: Optional[dict[str, Any]] = None
    error: Optional[str] = None
