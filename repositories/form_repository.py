"""Form Repository - persisted collection of form schemas

The whole collection is stored as one JSON array under a single well-known
key of a key-value store.
"""

import json
from typing import Any

from pydantic import ValidationError

from core.exceptions import PersistenceError
from core.logging_config import get_logger
from core.settings import settings
from core.storage import KeyValueStore, get_key_value_store
from schemas.form import FormSchema

logger = get_logger(__name__)


class FormRepository:
    def __init__(self, store: KeyValueStore, storage_key: str | None = None):
        self.store = store
        self.storage_key = storage_key or settings.FORMS_STORAGE_KEY

    def load_all(self) -> list[FormSchema]:
        """Return the persisted forms.

        Missing, unreadable or corrupt storage yields an empty list. Entries
        that no longer match the schema are skipped; unknown attributes are
        ignored.
        """
        try:
            entries = self._read_entries()
        except PersistenceError as e:
            logger.error(f"Error loading forms from storage: {e}")
            return []
        return self._parse_entries(entries)

    def get(self, form_id: str) -> FormSchema | None:
        return next((f for f in self.load_all() if f.id == form_id), None)

    def upsert(self, form: FormSchema) -> list[FormSchema]:
        """Insert or replace form by id. Returns the full updated collection.

        Stored entries that can not be parsed are written back untouched.

        Raises:
            PersistenceError: If the collection can not be read or written
        """
        entries = self._read_entries()
        serialized = self._serialize(form)
        existing_index = next(
            (i for i, entry in enumerate(entries) if _entry_id(entry) == form.id), -1
        )

        if existing_index >= 0:
            entries[existing_index] = serialized
        else:
            entries.append(serialized)

        self._write_entries(entries)
        logger.info(f"Saved form {form.id} ({len(entries)} stored)")
        return self._parse_entries(entries)

    def remove(self, form_id: str) -> list[FormSchema]:
        """Delete form by id. Returns the full updated collection.

        Raises:
            PersistenceError: If the collection can not be read or written
        """
        entries = [entry for entry in self._read_entries() if _entry_id(entry) != form_id]
        self._write_entries(entries)
        logger.info(f"Removed form {form_id} ({len(entries)} stored)")
        return self._parse_entries(entries)

    def _read_entries(self) -> list[Any]:
        """Raw stored entries. Raises PersistenceError rather than guess at a corrupt value."""
        stored = self.store.get(self.storage_key)
        if not stored:
            return []

        try:
            payload = json.loads(stored)
        except (json.JSONDecodeError, TypeError) as e:
            raise PersistenceError(f"Stored forms under '{self.storage_key}' are not valid JSON") from e

        if not isinstance(payload, list):
            raise PersistenceError(f"Stored forms under '{self.storage_key}' are not a list")
        return payload

    def _write_entries(self, entries: list[Any]) -> None:
        self.store.set(self.storage_key, json.dumps(entries))

    def _parse_entries(self, entries: list[Any]) -> list[FormSchema]:
        forms = []
        for index, entry in enumerate(entries):
            try:
                forms.append(FormSchema.model_validate(entry))
            except ValidationError as e:
                logger.warning_ctx(
                    "Skipping unreadable stored form",
                    index=index,
                    errors=e.error_count(),
                )
        return forms

    @staticmethod
    def _serialize(form: FormSchema) -> dict[str, Any]:
        return form.model_dump(mode="json", by_alias=True, exclude_none=True)


def _entry_id(entry: Any) -> Any:
    return entry.get("id") if isinstance(entry, dict) else None


def get_form_repository() -> FormRepository:
    """Dependency for form repository"""
    return FormRepository(get_key_value_store())
