"""Abstract base class for key-value storage backends."""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """Minimal string key -> string value storage.

    The form repository keeps its whole collection under a single key, so a
    backend only needs whole-value reads and writes. Implementations raise
    PersistenceError when the underlying medium is unavailable.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        pass
