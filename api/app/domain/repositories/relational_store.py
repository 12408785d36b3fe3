"""
Interfaz del store relacional usado por la sincronización Airtable.
Define el contrato que debe cumplir cualquier implementación.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from app.infrastructure.external.airtable_sync.types import TableSchema, UpsertOutcome


class IRelationalStore(ABC):
    """
    Interfaz del store relacional.

    Convenciones de filtros:
    - where: {columna: valor} -> igualdad; {columna: [valores]} -> IN
    - exclude: {columna: [valores]} -> NOT IN (los NULL nunca se consideran)
    """

    @abstractmethod
    def get_table(self, name: str) -> TableSchema:
        """
        Introspección de una tabla.

        Args:
            name: Nombre de la tabla

        Returns:
            TableSchema: Columnas (con su clase de tipo) y primary keys

        Raises:
            SyncConfigurationException: si la tabla no existe
        """
        pass

    @abstractmethod
    def select(
        self,
        table: str,
        columns: Sequence[str],
        where: Optional[Mapping[str, Any]] = None,
        not_null: Sequence[str] = (),
    ) -> List[Dict[str, Any]]:
        """
        Selecciona filas.

        Args:
            table: Tabla
            columns: Columnas a retornar
            where: Filtros de igualdad / IN
            not_null: Columnas que deben ser NOT NULL

        Returns:
            List[Dict[str, Any]]: Filas encontradas
        """
        pass

    @abstractmethod
    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
        """Inserta filas. Retorna la cantidad insertada."""
        pass

    @abstractmethod
    def upsert(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> UpsertOutcome:
        """
        Inserta o actualiza filas por primary key, una por una.

        Una fila existente solo se actualiza si alguno de sus valores cambió;
        `overrides` fuerza valores (p.ej. la marca de sincronización) sin
        contar como cambio.

        Returns:
            UpsertOutcome: filas insertadas y filas realmente modificadas
        """
        pass

    @abstractmethod
    def update(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        key_columns: Sequence[str],
    ) -> int:
        """Actualiza filas identificadas por `key_columns`. Retorna filas afectadas."""
        pass

    @abstractmethod
    def delete(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        exclude: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Borra filas.

        Returns:
            List[Dict[str, Any]]: Filas borradas
        """
        pass

    @abstractmethod
    def load_latest_sync_times(self) -> Dict[str, datetime]:
        """Últimos tiempos de sincronización por provider."""
        pass

    @abstractmethod
    def save_latest_sync_times(self, times: Mapping[str, datetime]) -> None:
        """Persiste los últimos tiempos de sincronización por provider."""
        pass

    def close(self) -> None:
        """Libera las conexiones del store (opcional)."""
        pass
