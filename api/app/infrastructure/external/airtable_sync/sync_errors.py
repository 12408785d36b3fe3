"""
Buffers de errores por provider.

- Errores para devs: detallados, se muestran en cada reporte hasta que se
  resetea el ciclo.
- Errores para negocio ("sales"): mensajes cortos para quien corrige los datos
  en Airtable. Persisten entre ciclos hasta que el field vuelve a cambiar y se
  limitan con un contador de iteraciones (ver error_report.py).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from .types import METAS_RECORD


@dataclass
class DevFieldError:
    message: str
    data: Optional[dict[str, Any]] = None


@dataclass
class DevErrorRow:
    record: dict[str, Any]
    fields: dict[str, DevFieldError] = field(default_factory=dict)


@dataclass
class SalesFieldError:
    message: str
    iterations: int = 0


@dataclass
class SalesErrorRow:
    # None para errores de metadatos (clave METAS)
    record: Optional[dict[str, Any]]
    fields: dict[str, SalesFieldError] = field(default_factory=dict)


class SyncErrorBuffer:
    """Errores acumulados por un provider, indexados por recordId."""

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        self.dev_errors: dict[str, DevErrorRow] = {}
        self.sales_errors: dict[str, SalesErrorRow] = {}

    def report_to_devs(
        self,
        record_id: str,
        record_fields: dict[str, Any],
        column: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        row = self.dev_errors.get(record_id)
        if row is None:
            row = DevErrorRow(record=dict(record_fields))
            self.dev_errors[record_id] = row
        row.fields[column] = DevFieldError(message=message, data=data)
        logger.debug(f"[{self.provider_name}] {record_id}.{column}: {message}")

    def report_to_sales(
        self,
        record_id: str,
        record_fields: Optional[dict[str, Any]],
        airtable_field: str,
        message: str,
    ) -> None:
        row = self.sales_errors.get(record_id)
        if row is None:
            row = SalesErrorRow(record=None if record_id == METAS_RECORD else dict(record_fields or {}))
            self.sales_errors[record_id] = row
        row.fields[airtable_field] = SalesFieldError(message=message, iterations=0)

    def fix_error(self, record_id: str, field_names: Optional[list[str]] = None) -> None:
        """
        Marca como resueltos los errores de negocio de un record.
        Sin field_names, se eliminan todos los del record.
        """
        row = self.sales_errors.get(record_id)
        if row is None:
            return

        if field_names is None:
            logger.debug(f"[{self.provider_name}] Todos los errores resueltos para {record_id}")
            del self.sales_errors[record_id]
            return

        for name in field_names:
            if row.fields.pop(name, None) is not None:
                logger.debug(f"[{self.provider_name}] Error resuelto para {record_id}.{name}")

        if not row.fields:
            del self.sales_errors[record_id]

    def dev_error_count(self) -> int:
        return sum(len(row.fields) for row in self.dev_errors.values())

    def reset_dev_errors(self) -> None:
        self.dev_errors = {}
