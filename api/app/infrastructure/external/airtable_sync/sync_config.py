"""
Configuración declarativa de los providers (mapeo Airtable <-> Postgres).

Cada columna de la tabla relacional se declara con una de cuatro variantes:

- Mirror:   copia directa de un field Airtable, con filtro opcional.
- Computed: valor calculado a partir de un conjunto fijo de fields Airtable.
- ToOne:    relación uno-a-uno resuelta vía el IdentityIndex de otro provider.
- ToMany:   relación uno-a-muchos que produce filas en una tabla de unión.

Este módulo no realiza I/O: solo define configuración.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union


Transform = Callable[[Any], Any]


@dataclass(frozen=True)
class Mirror:
    """
    Espejo de un field Airtable.

    - airtable: nombre del field en Airtable
    - filter: transforma el valor (solo se aplica si el valor no es None)
    - extra: si True, el valor se mapea pero no se persiste (sin columna en Postgres)
    """

    airtable: str
    filter: Optional[Transform] = None
    extra: bool = False

    @property
    def airtable_fields(self) -> tuple[str, ...]:
        return (self.airtable,)


@dataclass(frozen=True)
class Computed:
    """Valor derivado por una función pura sobre varios fields Airtable."""

    airtable: tuple[str, ...]
    func: Callable[[dict[str, Any]], Any]
    extra: bool = False

    @property
    def airtable_fields(self) -> tuple[str, ...]:
        return tuple(self.airtable)


@dataclass(frozen=True)
class ToOne:
    """
    Relación uno-a-uno: el field Airtable (multipleRecordLinks) apunta a un
    record del provider `target`; la columna guarda la pk local de ese record.
    """

    airtable: str
    target: str

    @property
    def airtable_fields(self) -> tuple[str, ...]:
        return (self.airtable,)


@dataclass(frozen=True)
class ToMany:
    """
    Relación uno-a-muchos: cada record enlazado produce una fila
    (pk_column=pk local, fk_column=pk del provider `target`) en `table`.
    """

    airtable: str
    target: str
    table: str
    pk_column: str
    fk_column: str

    @property
    def airtable_fields(self) -> tuple[str, ...]:
        return (self.airtable,)


ColumnMapping = Union[Mirror, Computed, ToOne, ToMany]


def is_single_field(mapping: ColumnMapping) -> bool:
    """True si la columna refleja exactamente un field Airtable (Mirror / ToOne)."""
    return isinstance(mapping, (Mirror, ToOne))


def has_database_column(mapping: ColumnMapping) -> bool:
    """Las relaciones ToMany y los valores extra no tienen columna en la tabla."""
    if isinstance(mapping, ToMany):
        return False
    return not getattr(mapping, "extra", False)


@dataclass(frozen=True)
class ProviderConfig:
    """
    Config de una tabla Airtable <-> una tabla Postgres.

    NOTA sobre el PK:
    - Si la pk de la tabla es `record_id_column`, el id Airtable es la pk.
    - Si no, la pk debe estar declarada en `mapper` y se calcula como
      cualquier otra columna.
    """

    name: str
    airtable_table: str
    table_name: str
    mapper: dict[str, ColumnMapping] = field(default_factory=dict)
    remote: bool = False
    record_id_column: str = "airtableId"
    created_field: str = "Created"
    updated_field: str = "Updated"
    created_column: str = "created"
    updated_column: str = "updated"
    synced_column: str = "synced"

    def relation_targets(self) -> set[str]:
        """Nombres de los providers a los que este provider enlaza."""
        return {
            m.target
            for m in self.mapper.values()
            if isinstance(m, (ToOne, ToMany)) and m.target != self.name
        }
