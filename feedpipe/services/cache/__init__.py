"""
Cache Services Package
"""

from .base import CacheBackend
from .backend_factory import get_cache_backend
from .dedup import CacheEntry, DedupCache, EntryState
from .memory_backend import MemoryCacheBackend
from .sqlite_backend import SQLiteCacheBackend
