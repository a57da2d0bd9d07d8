"""Key-value storage backends for persisted form schemas."""

from .base import KeyValueStore
from .factory import get_key_value_store

__all__ = ["KeyValueStore", "get_key_value_store"]
