from sqlalchemy import Column, String, DateTime, Text
from datetime import datetime, timezone

from .base import LocalBase


def _utcnow():
    return datetime.now(timezone.utc)


class State(LocalBase):
    """One stored string per key, backing SqlKeyValueStore.

    The saved form collection is a single row under FORMS_STORAGE_KEY.
    """
    __tablename__ = "state"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<State(key={self.key}, {len(self.value or '')} chars)>"
