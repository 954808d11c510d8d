"""
Data Transfer Objects (DTOs) para la capa de aplicacion.
"""
from .sync_dto import SyncRequestDTO, SyncResultDTO

__all__ = [
    "SyncRequestDTO",
    "SyncResultDTO",
]
