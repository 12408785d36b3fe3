"""
CLI: pull Airtable -> Postgres de todos los providers (sin webhooks).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) cuando el API no corre con
    AIRTABLE_ENABLE_REALTIME, o para forzar un sync completo.

Variables de entorno requeridas:
  - AIRTABLE_TOKEN
  - AIRTABLE_BASE_ID
  - DATABASE_URL (debe ser postgresql://... o postgres://...)

Ejecución:
  python scripts/airtable_to_postgres_sync.py
  python scripts/airtable_to_postgres_sync.py --full-resync
  python scripts/airtable_to_postgres_sync.py --check-only
"""

from __future__ import annotations

import argparse
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Cargar variables desde .env si existe, antes de construir Settings.
# Soportamos dos ubicaciones típicas:
# - api/.env (recomendado para scripts del backend)
# - repo_root/.env (si centralizas variables del proyecto)
_API_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from app.application.use_cases.sync_use_cases import SyncReportPublisher  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.infrastructure.external.airtable_sync.sync_service import build_sync_engine  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Sincroniza Airtable -> Postgres")
    parser.add_argument(
        "--full-resync",
        action="store_true",
        help="Trae todos los records (ignora el último tiempo de sync) y borra los que ya no existen.",
    )
    parser.add_argument(
        "--check-only",
        action="store_true",
        help="Solo valida la estructura Airtable/Postgres de cada provider (no sincroniza).",
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="No publica el reporte (log + Telegram) al terminar.",
    )
    args = parser.parse_args()

    publisher = None if args.no_report else SyncReportPublisher()
    engine = build_sync_engine(settings, report_callback=publisher)
    orchestrator = engine.orchestrator

    try:
        orchestrator.load_schema()
        if orchestrator.failed_providers:
            for name, reason in orchestrator.failed_providers.items():
                logger.error(f"[{name}] {reason}")
        if args.check_only:
            return 1 if orchestrator.failed_providers else 0

        orchestrator.latest_sync_times = engine.store.load_latest_sync_times()
        logger.info("Iniciando Airtable -> Postgres sync...")
        results = orchestrator.resync(full_resync=args.full_resync)
        for name, value in results.items():
            logger.info(f"[{name}] {value.as_dict() if hasattr(value, 'as_dict') else value}")

        orchestrator.create_sync_report(initial=True)
        failed = [name for name, value in results.items() if isinstance(value, str)]
        return 1 if failed or orchestrator.failed_providers else 0
    finally:
        engine.store.close()


if __name__ == "__main__":
    raise SystemExit(main())
