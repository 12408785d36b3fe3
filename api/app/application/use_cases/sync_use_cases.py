"""
Casos de uso para la sincronizacion Airtable <-> PostgreSQL.

El motor de sync es sincrono (requests + psycopg): todo el trabajo bloqueante
se ejecuta en threads via asyncio.to_thread para no bloquear el event loop.
"""
import asyncio
import concurrent.futures
from typing import Any, Dict, Optional

from loguru import logger

from app.core.config import settings
from app.infrastructure.external.airtable_sync.error_report import SyncReport
from app.infrastructure.external.airtable_sync.sync_service import SyncEngine
from app.infrastructure.external.telegram.telegram_client import TelegramClient
from app.shared.exceptions.base import AppException


class SyncNotReadyException(AppException):
    """El motor de sync no fue inicializado (deshabilitado o fallo al arrancar)."""

    def __init__(self):
        super().__init__(
            message="El servicio de sincronizacion no esta inicializado",
            status_code=503,
            error_code="SYNC_NOT_READY",
        )


class SyncReportPublisher:
    """
    Callback de reporte: loguea el reporte y envia los errores de negocio
    al chat de Telegram configurado.

    Se invoca desde threads del motor; el envio se agenda en el event loop
    de la aplicacion (o se ejecuta directamente si no hay loop, p.ej. en el CLI).
    """

    def __init__(
        self,
        telegram: Optional[TelegramClient] = None,
        chat_id: Optional[str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.telegram = telegram or TelegramClient()
        self.chat_id = chat_id if chat_id is not None else settings.TELEGRAM_REPORT_CHAT_ID
        self.loop = loop

    def __call__(self, report: SyncReport) -> None:
        self.log_report(report)
        if not report.simplified or not self.chat_id:
            return

        if self.loop is not None and self.loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self.send(report), self.loop)
            future.add_done_callback(self._log_send_failure)
        else:
            asyncio.run(self.send(report))

    @staticmethod
    def _log_send_failure(future: concurrent.futures.Future) -> None:
        if future.cancelled():
            logger.warning("Envio del reporte de sincronizacion cancelado")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Error enviando el reporte de sincronizacion por Telegram: {error}")

    @staticmethod
    def log_report(report: SyncReport) -> None:
        title = "Reporte inicial" if report.initial else "Reporte"
        totals = report.totals
        logger.info(
            f"{title} de sincronizacion: insertados={totals.inserted}, actualizados={totals.updated}, "
            f"excluidos={totals.excluded}, borrados={totals.deleted}, errores={totals.errors}"
        )
        if report.technical:
            # Escapar llaves para evitar error de formato en loguru
            logger.warning(report.technical.replace("{", "{{").replace("}", "}}"))

    async def send(self, report: SyncReport) -> bool:
        header = "<b>Sincronizacion Airtable</b>" + (" (inicio)" if report.initial else "")
        text = header + "\n\n" + "\n\n".join(report.simplified)
        sent = await self.telegram.send_message(text, self.chat_id)
        if sent:
            logger.info("Reporte de sincronizacion enviado por Telegram")
        return sent


class SyncUseCases:
    """
    Operaciones expuestas por la API sobre el motor de sync.
    """

    def __init__(self, engine: Optional[SyncEngine]):
        if engine is None:
            raise SyncNotReadyException()
        self.engine = engine
        self.orchestrator = engine.orchestrator

    async def resync(self, full_sync: bool = False) -> Dict[str, Any]:
        """
        Resincroniza todos los providers.

        Returns:
            Dict con stats por provider (o el mensaje de error del provider)
        """
        sync_type = "completa (full sync)" if full_sync else "incremental"
        logger.info(f"Iniciando sincronizacion {sync_type} Airtable -> PostgreSQL desde API")
        results = await asyncio.to_thread(self.orchestrator.resync, full_sync)
        return {
            name: value.as_dict() if hasattr(value, "as_dict") else value
            for name, value in results.items()
        }

    async def status(self) -> Dict[str, Any]:
        return self.orchestrator.status()

    async def create_report(self) -> SyncReport:
        return await asyncio.to_thread(self.orchestrator.create_sync_report, False)

    def notify_webhook(self) -> int:
        """Registra una notificacion de Airtable; los payloads se leen en el job."""
        return self.orchestrator.webhooks.notify()

    async def check_payloads(self, force: bool = False) -> int:
        return await asyncio.to_thread(self.orchestrator.check_payloads, force)

    async def handle_remote_request(self, provider_id: str, action: str, data: Any) -> Any:
        return await asyncio.to_thread(
            self.engine.writes.handle_remote_request, provider_id, action, data
        )
