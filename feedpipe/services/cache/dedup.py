"""
Dedup Cache - Single-Flight Memoization mit TTL

Pro Key läuft höchstens ein Producer gleichzeitig. Wer während einer
laufenden Berechnung denselben Key anfragt, wartet auf deren Ergebnis
statt eine zweite Berechnung zu starten.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import ProducerFailed
from .base import CacheBackend
from .memory_backend import MemoryCacheBackend

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[Any]]


class EntryState(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass
class CacheEntry:
    """
    In-process Zustand eines Keys.

    PENDING und FAILED Einträge leben hier; READY Werte landen im Backend.
    `future` ist die Warteschlange aller Aufrufer, die auf den Producer warten.
    """
    key: str
    state: EntryState
    future: "asyncio.Future[Any]"
    value: Any = None
    error: Optional[BaseException] = None
    expires_at: float = 0.0


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    shared: int = 0  # Aufrufer, die auf einen laufenden Producer gewartet haben
    failures: int = 0


class DedupCache:
    """
    Single-Flight Cache vor einem austauschbaren TTL-Backend.

    Check-then-create von PENDING passiert ohne await dazwischen; damit kann
    der Event-Loop keinen zweiten Producer für denselben Key starten.
    """

    def __init__(self, backend: Optional[CacheBackend] = None, failure_ttl: float = 0.0,
                 clock: Callable[[], float] = time.time):
        self.backend = backend or MemoryCacheBackend()
        self.failure_ttl = failure_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.stats = CacheStats()

    def state_of(self, key: str) -> Optional[EntryState]:
        """In-process Zustand eines Keys (None wenn kein PENDING/FAILED Eintrag)"""
        entry = self._entries.get(key)
        return entry.state if entry else None

    async def get_or_compute(self, key: str, ttl: float, producer: Producer,
                             failure_ttl: Optional[float] = None) -> Any:
        """
        Liefert den gecachten Wert oder berechnet ihn genau einmal.

        Args:
            key: Eindeutiger Key der logischen Ressource (z.B. kanonische URL)
            ttl: Lebensdauer eines erfolgreichen Ergebnisses in Sekunden
            producer: Async Callable ohne Argumente
            failure_ttl: Wie lange ein Fehler gecacht wird; 0 = sofort verwerfen.
                Default: failure_ttl des Caches

        Raises:
            ProducerFailed: Der Producer ist fehlgeschlagen (für alle Wartenden gleich)
        """
        while True:
            entry = self._entries.get(key)

            if entry is not None and entry.state is EntryState.PENDING:
                self.stats.shared += 1
                try:
                    return await asyncio.shield(entry.future)
                except asyncio.CancelledError:
                    if not entry.future.cancelled():
                        raise
                    # Producer wurde abgebrochen - neu versuchen
                    continue

            if entry is not None and entry.state is EntryState.FAILED:
                if self._clock() < entry.expires_at:
                    raise ProducerFailed(key, entry.error)
                self._entries.pop(key, None)

            return await self._produce(key, ttl, producer, failure_ttl)

    async def _produce(self, key: str, ttl: float, producer: Producer,
                       failure_ttl: Optional[float]) -> Any:
        entry = CacheEntry(
            key=key,
            state=EntryState.PENDING,
            future=asyncio.get_running_loop().create_future(),
        )
        self._entries[key] = entry

        try:
            value = await self.backend.get(key, self._clock())
            if value is not None:
                self.stats.hits += 1
            else:
                self.stats.misses += 1
                logger.debug(f"Cache miss for {key}, running producer")
                value = await producer()
                if ttl > 0 and value is not None:
                    await self.backend.set(key, value, self._clock() + ttl)

        except asyncio.CancelledError:
            self._release(entry)
            entry.future.cancel()
            raise

        except Exception as e:
            self.stats.failures += 1
            failure = ProducerFailed(key, e)
            entry.state = EntryState.FAILED
            entry.error = e

            ttl_on_failure = self.failure_ttl if failure_ttl is None else failure_ttl
            if ttl_on_failure > 0:
                entry.expires_at = self._clock() + ttl_on_failure
            else:
                self._release(entry)

            logger.warning(f"Producer for {key} failed: {e}")
            entry.future.set_exception(failure)
            entry.future.exception()  # als abgerufen markieren, auch ohne Wartende
            raise failure from e

        entry.state = EntryState.READY
        entry.value = value
        entry.expires_at = self._clock() + ttl
        self._release(entry)
        entry.future.set_result(value)
        return value

    def _release(self, entry: CacheEntry) -> None:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]

    async def invalidate(self, key: str) -> None:
        """
        Entfernt einen Key. Eine laufende Berechnung wird nicht abgebrochen
        und bleibt für ihre Wartenden gültig.
        """
        entry = self._entries.get(key)
        if entry is not None and entry.state is not EntryState.PENDING:
            self._release(entry)
        await self.backend.delete(key)

    async def sweep(self) -> int:
        """Entfernt abgelaufene Einträge (nur für Speicherbegrenzung nötig)"""
        now = self._clock()
        expired = [
            entry for entry in self._entries.values()
            if entry.state is EntryState.FAILED and now >= entry.expires_at
        ]
        for entry in expired:
            self._release(entry)
        return len(expired) + await self.backend.sweep(now)

    async def close(self) -> None:
        await self.backend.close()
