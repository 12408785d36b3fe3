"""
Data Transfer Objects (DTOs) para la capa de aplicacion.
"""
from .sync_dto import (
    SyncResultDTO,
    ProviderStatusDTO,
    SyncStatusDTO,
    SyncReportDTO,
    RemoteRequestDTO,
    RemoteResponseDTO,
    WebhookAckDTO,
)

__all__ = [
    "SyncResultDTO",
    "ProviderStatusDTO",
    "SyncStatusDTO",
    "SyncReportDTO",
    "RemoteRequestDTO",
    "RemoteResponseDTO",
    "WebhookAckDTO",
]
