"""
Índice bidireccional entre ids de record Airtable y pks de la base.

Ambos mapas se actualizan siempre juntos: toda mutación pasa por
`link` / `unlink`, que mantienen la biyección.
"""

from __future__ import annotations

import threading
from typing import Any, Hashable, Iterable, Iterator, Optional

from app.shared.exceptions.domain import UnresolvedRelationException


class IdentityIndex:
    """
    Biyección recordId (Airtable) <-> pk (base) para un provider.

    Invariante: a lo sumo un id local por id remoto y viceversa.
    """

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        self._remote_to_local: dict[str, Hashable] = {}
        self._local_to_remote: dict[Hashable, str] = {}
        self._lock = threading.RLock()

    def link(self, remote_id: str, local_id: Hashable) -> None:
        """Asocia ambos ids; cualquier asociación previa de uno u otro lado se descarta."""
        with self._lock:
            previous_local = self._remote_to_local.pop(remote_id, None)
            if previous_local is not None:
                self._local_to_remote.pop(previous_local, None)

            previous_remote = self._local_to_remote.pop(local_id, None)
            if previous_remote is not None:
                self._remote_to_local.pop(previous_remote, None)

            self._remote_to_local[remote_id] = local_id
            self._local_to_remote[local_id] = remote_id

    def unlink(self, remote_id: str) -> Optional[Hashable]:
        """Elimina la asociación a partir del id remoto. Retorna el id local, si existía."""
        with self._lock:
            local_id = self._remote_to_local.pop(remote_id, None)
            if local_id is not None:
                self._local_to_remote.pop(local_id, None)
            return local_id

    def seed(self, pairs: Iterable[tuple[str, Hashable]]) -> int:
        count = 0
        for remote_id, local_id in pairs:
            self.link(remote_id, local_id)
            count += 1
        return count

    def get_local(self, remote_id: Any, required: bool = False) -> Optional[Hashable]:
        local_id = self._remote_to_local.get(remote_id)
        if local_id is None and required:
            raise UnresolvedRelationException(self.provider_name, remote_id, direction="local")
        return local_id

    def get_remote(self, local_id: Any, required: bool = False) -> Optional[str]:
        remote_id = self._local_to_remote.get(local_id)
        if remote_id is None and required:
            raise UnresolvedRelationException(self.provider_name, local_id, direction="airtable")
        return remote_id

    def remote_ids(self) -> list[str]:
        with self._lock:
            return list(self._remote_to_local)

    def items(self) -> list[tuple[str, Hashable]]:
        with self._lock:
            return list(self._remote_to_local.items())

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._remote_to_local

    def __len__(self) -> int:
        return len(self._remote_to_local)

    def __iter__(self) -> Iterator[str]:
        return iter(self.remote_ids())
