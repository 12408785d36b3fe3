"""
Dependencias para inyeccion de casos de uso.
"""
from fastapi import Request

from app.application.use_cases.sync_use_cases import SyncUseCases


def get_sync_use_cases(request: Request) -> SyncUseCases:
    """
    Dependencia para obtener los casos de uso de sincronizacion.

    El motor se crea en el startup y vive en app.state.sync_engine.

    Raises:
        SyncNotReadyException: si el motor no esta inicializado
    """
    return SyncUseCases(getattr(request.app.state, "sync_engine", None))
