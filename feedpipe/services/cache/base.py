"""
Base Cache Backend Interface

Backing stores hold READY values only. Pending computations and the
single-flight guarantee live in DedupCache, in process, regardless of the
backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class CacheBackend(ABC):
    """
    Abstract base class for TTL-bound value stores.

    All methods are async to support both local (memory, SQLite) and remote
    stores. Timestamps are wall-clock seconds supplied by the caller, so a
    store never reads the clock itself.
    """

    @abstractmethod
    async def get(self, key: str, now: float) -> Optional[Any]:
        """
        Return the stored value for key, or None if missing or expired.

        Expired entries are removed lazily on this call.
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, expires_at: float) -> None:
        """Store value under key until expires_at."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key if present."""
        pass

    @abstractmethod
    async def sweep(self, now: float) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed
        """
        pass

    async def close(self) -> None:
        """Release connections or handles held by the store."""
        pass
