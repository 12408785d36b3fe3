"""
Lock por provider.

Motivacion:
- El IdentityIndex, las estadisticas y los errores de un provider solo deben
  ser mutados por un camino de sync a la vez.
- El pull inicial, la aplicacion de deltas de webhook y las escrituras remotas
  de un mismo provider no pueden correr en paralelo; providers distintos si.

Caracteristicas:
- Lock reentrante por nombre de provider (todo el codigo de sync corre en threads)
- Timeout configurable para evitar deadlocks
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from loguru import logger


# Timeout por defecto para adquirir un lock (en segundos)
DEFAULT_LOCK_TIMEOUT = 600.0


class ProviderLockTimeoutError(Exception):
    """Excepcion lanzada cuando no se puede adquirir el lock dentro del timeout."""

    def __init__(self, provider_name: str, timeout: float):
        self.provider_name = provider_name
        self.timeout = timeout
        super().__init__(
            f"Timeout ({timeout}s) adquiriendo lock de sync para provider: {provider_name}"
        )


class ProviderLockManager:
    """Gestor de locks por nombre de provider."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.RLock] = {}
        self._meta_lock = threading.Lock()

    def get(self, provider_name: str) -> threading.RLock:
        """Obtiene o crea el lock del provider."""
        with self._meta_lock:
            lock = self._locks.get(provider_name)
            if lock is None:
                lock = threading.RLock()
                self._locks[provider_name] = lock
            return lock

    @contextmanager
    def hold(
        self,
        provider_name: str,
        timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT,
    ) -> Iterator[None]:
        """Context manager sincrono (threads de sync)."""
        lock = self.get(provider_name)
        acquired = lock.acquire(timeout=timeout) if timeout and timeout > 0 else lock.acquire()
        if not acquired:
            logger.warning(f"Timeout esperando lock de provider {provider_name}")
            raise ProviderLockTimeoutError(provider_name, timeout or 0.0)
        try:
            yield
        finally:
            lock.release()
