"""
Endpoint publico notificado por Airtable cuando cambia la base.
"""
from fastapi import APIRouter, Depends, status

from app.api.v1.dependencies.use_case_deps import get_sync_use_cases
from app.application.dto.sync_dto import WebhookAckDTO
from app.application.use_cases.sync_use_cases import SyncUseCases


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/airtable", response_model=WebhookAckDTO, status_code=status.HTTP_200_OK)
async def airtable_notification(use_cases: SyncUseCases = Depends(get_sync_use_cases)) -> WebhookAckDTO:
    """
    La notificacion no trae los cambios: solo se marca que hay payloads
    pendientes y el job periodico los lee por cursor.
    """
    pending = use_cases.notify_webhook()
    return WebhookAckDTO(received=True, pending=pending)
