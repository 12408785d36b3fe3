"""
Reconciliación de tablas de unión (relaciones ToMany).
"""

from __future__ import annotations

from loguru import logger

from app.domain.repositories.relational_store import IRelationalStore

from .types import RelationsIndex, SyncStats


class RelationIndexManager:
    """
    Por cada tabla de unión con pks tocadas:
    1. upsert de todos los pares (pk, fk) pendientes
    2. para cada pk tocada, borra las filas cuyo fk no está entre los recién escritos

    Las pks no tocadas no se modifican. Fila por fila, sin transacción global.
    """

    def __init__(self, store: IRelationalStore) -> None:
        self._store = store

    def reconcile(self, relations: RelationsIndex, stats: SyncStats) -> SyncStats:
        delta = SyncStats()

        for table, group in relations.items():
            if not group.pks:
                continue

            if group.rows:
                outcome = self._store.upsert(table, group.as_dicts())
                delta.upserted_relations += outcome.affected
                logger.debug(
                    f"Upsert de {len(group.rows)} relaciones en {table}, modificadas: {outcome.affected}"
                )

            for pk, fks in group.fks_by_pk().items():
                deleted = self._store.delete(
                    table,
                    where={group.pk_column: pk},
                    exclude={group.fk_column: fks},
                )
                delta.deleted_relations += len(deleted)

        stats.merge(delta)
        return delta
