"""
DTOs relacionados con la sincronizacion Airtable <-> PostgreSQL.
"""
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field


class SyncResultDTO(BaseModel):
    """Resultado de una resincronizacion manual."""

    success: bool = Field(..., description="True si ningun provider fallo")
    full_sync: bool = Field(False, description="Indica si fue un sync completo")
    message: str = Field(..., description="Resumen legible")
    providers: Dict[str, Any] = Field(
        default_factory=dict,
        description="Stats por provider, o el mensaje de error si el provider fallo"
    )


class ProviderStatusDTO(BaseModel):
    """Estado de un provider."""

    name: str
    airtable_table: str
    table: str
    loaded: bool
    indexed: int
    stats: Dict[str, int]
    latest_sync: Optional[Any] = None
    error: Optional[str] = None


class SyncStatusDTO(BaseModel):
    """Estado del servicio de sincronizacion."""

    state: str = Field(..., description="Estado del orquestador")
    webhook_id: Optional[str] = Field(None, description="Webhook registrado en Airtable")
    payload_cursor: int = Field(1, description="Ultimo cursor de payloads confirmado")
    pending_notifications: int = Field(0, description="Notificaciones sin procesar")
    providers: List[ProviderStatusDTO] = Field(default_factory=list)


class SyncReportDTO(BaseModel):
    """Reporte de sincronizacion (HTML compatible con Telegram)."""

    simplified: List[str] = Field(default_factory=list, description="Errores de negocio por provider")
    technical: str = Field("", description="Reporte tecnico")
    totals: Dict[str, int] = Field(default_factory=dict, description="Totales de todos los providers")
    initial: bool = False


class RemoteRequestDTO(BaseModel):
    """Pedido de escritura de otro proceso (pasarela remota)."""

    model_config = ConfigDict(populate_by_name=True)

    provider_id: str = Field(..., alias="providerId", min_length=1, description="Nombre del provider")
    action: str = Field(..., description="create | update | delete")
    data: Any = Field(None, description="Filas (create), {rows, simulate} (update) o recordIds (delete)")


class RemoteResponseDTO(BaseModel):
    """Respuesta de la pasarela remota."""

    success: bool = True
    data: Any = None


class WebhookAckDTO(BaseModel):
    """Respuesta a una notificacion de Airtable."""

    received: bool = True
    pending: int = Field(0, description="Notificaciones pendientes de procesar")
