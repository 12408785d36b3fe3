"""
Reporte periódico de sincronización.

- Errores de negocio: se incluyen cuando son nuevos (iterations == 0) o como
  recordatorio cuando el contador alcanza el umbral; el resto del tiempo se
  silencian. Nunca se descartan hasta que el field vuelve a cambiar.
- Errores para devs: se incluyen en cada reporte.

El reporte usa HTML compatible con Telegram (parse_mode=HTML).
"""

from __future__ import annotations

import html
import json
from dataclasses import dataclass, field
from typing import Any, Iterable

from .provider import DataProvider, ProviderSyncResults
from .sync_errors import SalesErrorRow
from .types import METAS_RECORD, SyncStats


REMINDER_PREFIX = "(Reminder) "


@dataclass
class SyncReport:
    simplified: list[str] = field(default_factory=list)
    technical: str = ""
    totals: SyncStats = field(default_factory=SyncStats)
    initial: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.simplified and not self.technical

    def as_dict(self) -> dict[str, Any]:
        return {
            "simplified": self.simplified,
            "technical": self.technical,
            "totals": self.totals.as_dict(),
            "initial": self.initial,
        }


def _record_label(row: SalesErrorRow) -> str:
    """Hasta 3 valores cortos del record para identificarlo."""
    if row.record is None:
        return "Metadatos"
    parts: list[str] = []
    for value in row.record.values():
        if isinstance(value, bool):
            continue
        if (isinstance(value, str) and value and len(value) < 100) or isinstance(value, (int, float)):
            parts.append(str(value))
    if not parts:
        return "Record vacío"
    return " / ".join(parts[:3])


class ErrorReportAggregator:
    def __init__(self, reminder_iterations: float = 1) -> None:
        # REPORT_REMINDER_MINUTES / REPORT_INTERVAL_MINUTES
        self.reminder_iterations = reminder_iterations

    def _sales_lines(self, row: SalesErrorRow) -> list[str]:
        lines: list[str] = []
        for field_error in row.fields.values():
            if field_error.iterations == 0:
                lines.append(field_error.message)
            elif field_error.iterations >= self.reminder_iterations:
                lines.append(REMINDER_PREFIX + field_error.message)
                field_error.iterations = 0
            field_error.iterations += 1
        return lines

    def _simplified_section(self, provider: DataProvider, results: ProviderSyncResults) -> str:
        blocks: list[str] = []
        for record_id, row in results.sales_errors.items():
            lines = self._sales_lines(row)
            if not lines:
                continue

            label = html.escape(f"{provider.config.airtable_table}:{_record_label(row)}")
            if record_id == METAS_RECORD:
                header = f"<b>{label}</b>"
            else:
                header = f'<a href="{provider.record_url(record_id)}">{label}</a>'
            blocks.append(header)
            blocks.append("<pre>" + html.escape("\n".join(lines)) + "</pre>")
        return "\n".join(blocks)

    def _technical_section(self, provider: DataProvider, results: ProviderSyncResults) -> str:
        stats = results.stats
        lines = [
            f"<b>{html.escape(provider.name)}</b>",
            f"Desde: {html.escape(provider.config.airtable_table)} | Records: {stats.from_airtable} "
            f"| Hacia: {html.escape(provider.table_name)}",
            f"Insertados: {stats.inserted} | Actualizados: {stats.updated} | Upserted: {stats.upserted}",
            f"Excluidos: {stats.excluded} | Borrados: {stats.deleted}",
            f"Relaciones upserted: {stats.upserted_relations} | Relaciones borradas: {stats.deleted_relations}",
        ]
        for record_id, row in results.dev_errors.items():
            for column, error in row.fields.items():
                line = f"{column} : {record_id}: {error.message}"
                if error.data is not None:
                    line += "\n" + json.dumps(error.data, default=str, ensure_ascii=False)
                lines.append(html.escape(line))
        return "\n".join(lines)

    def aggregate(self, providers: Iterable[DataProvider], initial: bool = False) -> SyncReport:
        report = SyncReport(initial=initial)
        technical: list[str] = []

        for provider in providers:
            results = provider.get_sync_results()

            simplified = self._simplified_section(provider, results)
            if simplified:
                report.simplified.append(simplified)

            stats = results.stats
            stats.errors += sum(len(row.fields) for row in results.dev_errors.values())
            report.totals.merge(stats)

            # Solo los providers con algo relevante aportan una sección
            if not stats.is_empty():
                technical.append(self._technical_section(provider, results))

        report.technical = "\n\n".join(technical)
        return report

    def reset(self, provider: DataProvider) -> None:
        """Descarta stats y errores de devs del provider sin reportarlos."""
        provider.get_sync_results()
