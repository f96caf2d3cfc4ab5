"""
Cache Backend Factory

Creates the backing store selected by configuration.
"""

import logging

from ...config import PipelineConfig
from .base import CacheBackend
from .memory_backend import MemoryCacheBackend
from .sqlite_backend import SQLiteCacheBackend

logger = logging.getLogger(__name__)


def get_cache_backend(config: PipelineConfig) -> CacheBackend:
    """
    Factory function to create the configured cache backend.

    Returns:
        CacheBackend instance (MemoryCacheBackend or SQLiteCacheBackend)
    """
    backend = config.cache_backend

    if backend == "memory":
        logger.info(f"Using in-memory cache backend (max {config.cache_max_entries} entries)")
        return MemoryCacheBackend(max_entries=config.cache_max_entries)

    if backend == "sqlite":
        logger.info(f"Using SQLite cache backend at {config.cache_db_path}")
        return SQLiteCacheBackend(db_path=config.cache_db_path)

    raise ValueError(f"Unknown cache backend: {backend}. Supported: memory, sqlite")
