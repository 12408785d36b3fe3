"""
Casos de uso de la aplicacion.
"""
from .sync_use_cases import SyncNotReadyException, SyncReportPublisher, SyncUseCases

__all__ = ["SyncNotReadyException", "SyncReportPublisher", "SyncUseCases"]
