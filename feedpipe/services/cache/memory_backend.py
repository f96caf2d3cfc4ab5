"""
In-memory cache backend (default)
"""

import logging
from collections import OrderedDict
from typing import Any, Optional, Tuple

from .base import CacheBackend

logger = logging.getLogger(__name__)


class MemoryCacheBackend(CacheBackend):
    """
    Dict-backed store with lazy expiry.

    max_entries bounds memory: when full, the entry inserted first is evicted.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self._data: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    async def get(self, key: str, now: float) -> Optional[Any]:
        item = self._data.get(key)
        if item is None:
            return None

        value, expires_at = item
        if now >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: Any, expires_at: float) -> None:
        self._data.pop(key, None)
        self._data[key] = (value, expires_at)

        if self.max_entries is not None:
            while len(self._data) > self.max_entries:
                evicted, _ = self._data.popitem(last=False)
                logger.debug(f"Cache full, evicted {evicted}")

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def sweep(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._data.items() if now >= expires_at]
        for key in expired:
            del self._data[key]
        return len(expired)
