"""Key-value store backed by the local `state` table."""

from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import PersistenceError
from core.logging_config import get_logger
from models_local.state import State

from .base import KeyValueStore

logger = get_logger(__name__)


class SqlKeyValueStore(KeyValueStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        try:
            with self.session_factory() as db:
                state = db.query(State).filter(State.key == key).first()
                return state.value if state else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read state key '{key}': {e}")
            raise PersistenceError(f"Could not read '{key}' from storage") from e

    def set(self, key: str, value: str) -> None:
        try:
            with self.session_factory() as db:
                state = db.query(State).filter(State.key == key).first()
                if state:
                    state.value = value
                    state.updated_at = datetime.now(timezone.utc)
                else:
                    db.add(State(key=key, value=value))
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to write state key '{key}': {e}")
            raise PersistenceError(f"Could not write '{key}' to storage") from e
