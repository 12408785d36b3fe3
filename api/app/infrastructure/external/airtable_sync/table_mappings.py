"""
Providers sincronizados por este despliegue (Airtable <-> Postgres).

Este es el punto recomendado para tener control total sobre:
- qué columnas existen en Postgres
- cómo se transforman los valores de Airtable
- cómo se resuelven relaciones cuando Airtable usa links

El DDL de las tablas debe mantenerse alineado con estas definiciones:
los tipos se validan al arrancar y una incompatibilidad deshabilita el provider.
Las tablas de unión usan (pk_column, fk_column) como primary key compuesta.
"""

from __future__ import annotations

from typing import Any, Optional

from .sync_config import Computed, Mirror, ProviderConfig, ToMany, ToOne


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


def _full_name(fields: dict[str, Any]) -> Optional[str]:
    parts = [_strip(fields.get("Nombre")), _strip(fields.get("Apellido"))]
    name = " ".join(p for p in parts if p)
    return name or None


def get_provider_configs() -> list[ProviderConfig]:
    """
    Retorna los providers en orden de registro. Los providers enlazados
    (target de ToOne/ToMany) se sincronizan antes que quienes los referencian.
    """
    coaches = ProviderConfig(
        name="coaches",
        airtable_table="Entrenadores",
        table_name="coaches",
        mapper={
            "name": Computed(("Nombre", "Apellido"), _full_name),
            "email": Mirror("Email", filter=_lower),
            "active": Mirror("Activo"),
        },
    )

    groups = ProviderConfig(
        name="groups",
        airtable_table="Grupos",
        table_name="training_groups",
        mapper={
            "name": Mirror("Nombre", filter=_strip),
            "discipline": Mirror("Disciplina"),
        },
    )

    athletes = ProviderConfig(
        name="athletes",
        airtable_table="Atletas",
        table_name="athletes",
        remote=True,
        mapper={
            "name": Computed(("Nombre", "Apellido"), _full_name),
            "email": Mirror("Email", filter=_lower),
            "phone": Mirror("Teléfono", filter=_strip),
            "birth_date": Mirror("Fecha de nacimiento"),
            "level": Mirror("Nivel"),
            "disciplines": Mirror("Disciplinas"),
            "coach_id": ToOne("Entrenador", target="coaches"),
            "groups": ToMany(
                "Grupos",
                target="groups",
                table="athlete_groups",
                pk_column="athlete_id",
                fk_column="group_id",
            ),
            "notes": Mirror("Notas", extra=True),
        },
    )

    return [coaches, groups, athletes]
