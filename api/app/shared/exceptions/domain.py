"""
Excepciones relacionadas con la sincronización Airtable <-> Postgres.

Taxonomía:
- Configuración (fatal): el mapeo o el esquema remoto no son compatibles.
- Exclusión de fila: un record se omite y se reporta, el resto sigue.
- Escritura remota: Airtable rechazó la escritura, la base no se toca.
- Deriva de protocolo: formato de payload de webhook desconocido.
"""
from typing import Any, Optional

from app.shared.exceptions.base import AppException


class DomainException(AppException):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, error_code: str = "DOMAIN_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details
        )


class EntityNotFoundException(DomainException):
    """Excepción cuando no se encuentra una entidad."""

    def __init__(self, entity_name: str, entity_id: Any):
        super().__init__(
            message=f"{entity_name} con ID {entity_id} no encontrado",
            error_code="ENTITY_NOT_FOUND",
            details={"entity": entity_name, "id": str(entity_id)}
        )
        self.status_code = 404


class SyncConfigurationException(AppException):
    """
    Error fatal de configuración: field inexistente, tipo incompatible,
    campos Created/Updated ausentes, pk sin mapper...
    Detiene el registro del provider afectado.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="SYNC_CONFIGURATION_ERROR",
            details=details
        )


class UnsupportedFieldTypeException(SyncConfigurationException):
    """Tipo de field Airtable desconocido (deriva de esquema)."""

    def __init__(self, path_name: str, field_type: str):
        super().__init__(
            message=f"El field Airtable {path_name} tiene un tipo no soportado: {field_type}",
            details={"field": path_name, "type": field_type}
        )


class RecordExclusionException(DomainException):
    """Señal interna: el record se excluye de la sincronización (ya fue reportado)."""

    def __init__(self, record_id: str, column: str, reason: str):
        super().__init__(
            message=f"Record {record_id} excluido ({column}): {reason}",
            error_code="RECORD_EXCLUDED",
            details={"record_id": record_id, "column": column}
        )
        self.record_id = record_id
        self.column = column


class UnresolvedRelationException(DomainException):
    """Una relación indicada por el caller no tiene contraparte indexada."""

    def __init__(self, provider: str, local_id: Any, direction: str = "airtable"):
        super().__init__(
            message=(
                f"No se encontró el id {direction} para '{local_id}' "
                f"en el provider {provider}"
            ),
            error_code="UNRESOLVED_RELATION",
            details={"provider": provider, "id": str(local_id)}
        )


class RemoteWriteException(AppException):
    """Airtable rechazó una escritura; la base de datos no se modifica."""

    def __init__(self, provider: str, action: str, reason: str):
        super().__init__(
            message=f"Fallo al ejecutar '{action}' en Airtable para {provider}: {reason}",
            status_code=502,
            error_code="REMOTE_WRITE_FAILED",
            details={"provider": provider, "action": action}
        )


class StoreWriteException(AppException):
    """La base rechazó la escritura de una fila (constraint, tipo...)."""

    def __init__(self, table: str, reason: str, details: Optional[dict] = None):
        super().__init__(
            message=f"Error escribiendo en la tabla {table}: {reason}",
            status_code=500,
            error_code="STORE_WRITE_FAILED",
            details={"table": table, **(details or {})}
        )
        self.table = table
        self.reason = reason


class WriteOperationsDisabledException(DomainException):
    """Escrituras deshabilitadas porque el servicio Airtable no está activo."""

    def __init__(self):
        super().__init__(
            message="Las escrituras están deshabilitadas porque el servicio Airtable no está activo.",
            error_code="WRITES_DISABLED"
        )
        self.status_code = 409


class PayloadFormatException(AppException):
    """Formato de payload de webhook no soportado."""

    def __init__(self, payload_format: Any):
        super().__init__(
            message=f"Formato de payload no soportado: {payload_format}",
            status_code=500,
            error_code="UNSUPPORTED_PAYLOAD_FORMAT",
            details={"payload_format": str(payload_format)}
        )


class ProviderNotFoundException(EntityNotFoundException):
    """No existe un provider registrado con ese nombre."""

    def __init__(self, provider_id: str):
        super().__init__("Provider", provider_id)
        self.error_code = "PROVIDER_NOT_FOUND"


class RemoteAccessDisabledException(DomainException):
    """El provider no permite escrituras a través de la pasarela remota."""

    def __init__(self, provider_id: str):
        super().__init__(
            message=f"El acceso remoto no está habilitado para el provider '{provider_id}'",
            error_code="REMOTE_ACCESS_DISABLED",
            details={"provider": provider_id}
        )
        self.status_code = 403


class UnknownRemoteActionException(DomainException):
    """Acción desconocida en la pasarela remota."""

    def __init__(self, action: str):
        super().__init__(
            message=f"Acción desconocida: '{action}'",
            error_code="UNKNOWN_ACTION",
            details={"action": action}
        )
