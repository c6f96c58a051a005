"""
Database Layer
KV persistence behind a single contract.

Backends:
    memory  → MemoryKVStore (development / tests)
    sqlite  → SQLiteKVStore (persistent)
"""

import logging
from typing import Optional

import config

from .kv import KVStore, keys
from .memory import MemoryKVStore
from .sqlite import SQLiteKVStore

logger = logging.getLogger(__name__)

__all__ = ["KVStore", "keys", "MemoryKVStore", "SQLiteKVStore", "get_store", "reset_store"]


_store: Optional[KVStore] = None


def get_store() -> KVStore:
    """Get singleton store instance, chosen by STORE_BACKEND"""
    global _store
    if _store is None:
        if config.STORE_BACKEND == "sqlite":
            logger.info("Using SQLite KV store at %s", config.SQLITE_PATH)
            _store = SQLiteKVStore(config.SQLITE_PATH)
        else:
            if config.STORE_BACKEND != "memory":
                logger.warning(
                    "Unknown STORE_BACKEND %r - falling back to memory store",
                    config.STORE_BACKEND,
                )
            logger.info("Using in-memory KV store (data is lost on restart)")
            _store = MemoryKVStore()
    return _store


def reset_store(store: Optional[KVStore] = None) -> None:
    """Replace (or drop) the singleton"""
    global _store
    _store = store
