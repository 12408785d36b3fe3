"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
import asyncio
from typing import Callable
from fastapi import FastAPI
from loguru import logger
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.application.use_cases.sync_use_cases import SyncReportPublisher
from app.infrastructure.external.airtable_sync.sync_service import SyncEngine, build_sync_engine


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa el motor de sync y los jobs periodicos."""
        app.state.sync_engine = None
        app.state.scheduler = None
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            # Configurar logging adicional
            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            _validate_config()

            if not settings.AIRTABLE_ENABLE:
                logger.warning("AIRTABLE_ENABLE=false: el servicio de sincronizacion no se inicia")
                return

            publisher = SyncReportPublisher(loop=asyncio.get_running_loop())
            engine = build_sync_engine(settings, report_callback=publisher)

            # Pull inicial + webhooks + reporte inicial (bloqueante, en thread)
            await asyncio.to_thread(engine.orchestrator.start)
            app.state.sync_engine = engine
            logger.info("Motor de sincronizacion iniciado")

            app.state.scheduler = _start_scheduler(engine)

            logger.success("Aplicacion iniciada correctamente")
            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida que la configuracion critica este presente."""
    warnings = []

    if settings.AIRTABLE_ENABLE and not (settings.AIRTABLE_TOKEN and settings.AIRTABLE_BASE_ID):
        warnings.append("AIRTABLE_TOKEN / AIRTABLE_BASE_ID no configurados - la sincronizacion no funcionara")
    if settings.AIRTABLE_ENABLE_REALTIME and settings.WEBHOOK_PUBLIC_URL.startswith("http://localhost"):
        warnings.append("WEBHOOK_PUBLIC_URL apunta a localhost - Airtable no podra notificar cambios")
    if not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_REPORT_CHAT_ID:
        warnings.append("Telegram no configurado - los reportes solo se registran en el log")

    # Mostrar advertencias
    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def _start_scheduler(engine: SyncEngine) -> AsyncIOScheduler:
    """
    Jobs periodicos:
    - lectura de payloads del webhook (solo si hubo notificaciones)
    - lectura forzada de payloads (red de seguridad)
    - reporte de sincronizacion
    """
    orchestrator = engine.orchestrator

    async def check_payloads(force: bool = False) -> None:
        try:
            await asyncio.to_thread(orchestrator.check_payloads, force)
        except Exception as e:
            # El cursor no avanzo: el proximo tick reintenta
            logger.error(f"Error procesando payloads del webhook: {e}")

    async def create_report() -> None:
        try:
            await asyncio.to_thread(orchestrator.create_sync_report, False)
        except Exception as e:
            logger.error(f"Error generando el reporte de sincronizacion: {e}")

    scheduler = AsyncIOScheduler()
    if settings.AIRTABLE_ENABLE_REALTIME:
        scheduler.add_job(
            check_payloads,
            trigger=IntervalTrigger(seconds=settings.WEBHOOK_POLL_SECONDS),
            id="airtable_payloads",
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            check_payloads,
            trigger=IntervalTrigger(seconds=settings.WEBHOOK_SAFETY_POLL_SECONDS),
            kwargs={"force": True},
            id="airtable_payloads_safety",
            max_instances=1,
            coalesce=True,
        )
    scheduler.add_job(
        create_report,
        trigger=IntervalTrigger(minutes=settings.REPORT_INTERVAL_MINUTES),
        id="sync_report",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(f"Scheduler iniciado con {len(scheduler.get_jobs())} jobs")
    return scheduler


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    # Determinar la URL base de acceso
    if settings.HOST == "0.0.0.0":
        access_host = "localhost"
    else:
        access_host = settings.HOST

    base_url = f"http://{access_host}:{settings.PORT}"

    # Mostrar las URLs disponibles
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync status: {base_url}/api/v1/sync/status</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Webhook:     {settings.WEBHOOK_PUBLIC_URL.rstrip('/')}{settings.WEBHOOK_PATH}</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler detenido")

        engine = getattr(app.state, "sync_engine", None)
        if engine is not None:
            try:
                await asyncio.to_thread(engine.orchestrator.stop)
                logger.info("Webhook de Airtable eliminado")
            except Exception as e:
                logger.error(f"Error eliminando el webhook de Airtable: {e}")
            engine.store.close()
            logger.info("Conexion a la base de datos cerrada")

        logger.success("Aplicacion cerrada correctamente")

    return shutdown
