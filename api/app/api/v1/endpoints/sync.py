"""
Endpoints para sincronizacion Airtable <-> PostgreSQL.
Permite resincronizar, consultar el estado, forzar un reporte y
recibir escrituras de otros procesos (pasarela remota).
"""
from fastapi import APIRouter, Depends, Query, status
from loguru import logger

from app.api.v1.dependencies.use_case_deps import get_sync_use_cases
from app.application.dto.sync_dto import (
    RemoteRequestDTO,
    RemoteResponseDTO,
    SyncReportDTO,
    SyncResultDTO,
    SyncStatusDTO,
)
from app.application.use_cases.sync_use_cases import SyncUseCases


router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post(
    "/airtable",
    response_model=SyncResultDTO,
    status_code=status.HTTP_200_OK,
    summary="Sincronizar Airtable con PostgreSQL"
)
async def sync_airtable(
    full_sync: bool = Query(
        default=False,
        description="Si True, sincroniza todos los registros. Si False, solo los modificados desde el ultimo sync."
    ),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> SyncResultDTO:
    """
    Ejecuta la sincronizacion de Airtable a PostgreSQL para todos los providers.

    - Si full_sync=True: trae todos los records y borra las filas que ya no existen en Airtable
    - Si full_sync=False: solo los records modificados desde el ultimo sync
    - Un provider no puede sincronizarse dos veces en paralelo (lock por provider)
    """
    results = await use_cases.resync(full_sync)

    failed = [name for name, value in results.items() if isinstance(value, str)]
    changed = sum(v.get("upserted", 0) for v in results.values() if isinstance(v, dict))
    sync_type = "completa (full sync)" if full_sync else "incremental"
    if failed:
        message = f"Sincronizacion {sync_type} con errores en: {', '.join(failed)}"
    elif changed > 0:
        message = f"Sincronizacion {sync_type} completada: {changed} registro(s) actualizado(s)"
    else:
        message = "Sin cambios en Airtable"

    logger.info(f"Sync completado: {message}")
    return SyncResultDTO(success=not failed, full_sync=full_sync, message=message, providers=results)


@router.get("/status", response_model=SyncStatusDTO, summary="Estado de la sincronizacion")
async def sync_status(use_cases: SyncUseCases = Depends(get_sync_use_cases)) -> SyncStatusDTO:
    return SyncStatusDTO(**await use_cases.status())


@router.post("/report", response_model=SyncReportDTO, summary="Generar el reporte de sincronizacion")
async def sync_report(use_cases: SyncUseCases = Depends(get_sync_use_cases)) -> SyncReportDTO:
    """
    Genera el reporte ahora (y lo publica), reseteando los contadores del ciclo.
    """
    report = await use_cases.create_report()
    return SyncReportDTO(**report.as_dict())


@router.post("/remote", response_model=RemoteResponseDTO, summary="Pasarela de escrituras remotas")
async def remote_request(
    request: RemoteRequestDTO,
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> RemoteResponseDTO:
    """
    Escritura pedida por otro proceso: {providerId, action: create|update|delete, data}.
    Solo para providers declarados con remote=True.
    """
    data = await use_cases.handle_remote_request(request.provider_id, request.action, request.data)
    return RemoteResponseDTO(success=True, data=data)
