"""Factory for creating the key-value store based on STORAGE_BACKEND."""

from core.settings import settings
from .base import KeyValueStore
from .memory_store import InMemoryKeyValueStore


_store_instance: KeyValueStore | None = None


def get_key_value_store() -> KeyValueStore:
    """Get the configured key-value store.

    - STORAGE_BACKEND=sql: SqlKeyValueStore on the local `state` table
    - STORAGE_BACKEND=memory: InMemoryKeyValueStore (lost on restart)

    Raises:
        ValueError: If STORAGE_BACKEND names an unknown backend
    """
    global _store_instance

    if _store_instance is None:
        backend = settings.STORAGE_BACKEND.lower()
        if backend == "sql":
            from db.session import SessionLocal, init_local_db
            from .sql_store import SqlKeyValueStore

            init_local_db()
            _store_instance = SqlKeyValueStore(SessionLocal)
        elif backend == "memory":
            _store_instance = InMemoryKeyValueStore()
        else:
            raise ValueError(
                f"Unknown STORAGE_BACKEND '{settings.STORAGE_BACKEND}', expected 'sql' or 'memory'"
            )

    return _store_instance


def reset_key_value_store():
    """Reset the store instance (useful for testing)."""
    global _store_instance
    _store_instance = None
