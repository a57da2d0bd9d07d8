"""Form Controller - owns the live FormState of one editing/filling session

Every transition runs to completion under a single-writer lock. Value changes
recompute derived descendants and re-validate the changed field; structural
edits only touch the schema.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from core.exceptions import (
    FormNotFoundError,
    FormSubmissionError,
    NoActiveFormError,
    PersistenceError,
    SchemaIntegrityError,
)
from core.logging_config import get_logger
from repositories.form_repository import FormRepository
from schemas.form import (
    OPTION_FIELD_TYPES,
    FormField,
    FormFieldUpdate,
    FormSchema,
    generate_form_id,
)
from schemas.form_state import FormState
from services.derived_field_service import check_integrity, recompute_all, recompute_descendants
from services.validation_service import validate_field, validate_form

logger = get_logger(__name__)


class FormController:
    def __init__(self, repository: FormRepository, clock: Optional[Callable[[], datetime]] = None):
        self.repository = repository
        self.clock = clock or datetime.now
        self._state = FormState()
        self._lock = threading.RLock()

    # Read access

    @property
    def state(self) -> FormState:
        with self._lock:
            return self._state.model_copy(deep=True)

    @property
    def current_form(self) -> Optional[FormSchema]:
        with self._lock:
            form = self._state.current_form
            return form.model_copy(deep=True) if form else None

    @property
    def saved_forms(self) -> list[FormSchema]:
        with self._lock:
            return [f.model_copy(deep=True) for f in self._state.saved_forms]

    @property
    def form_data(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._state.form_data)

    @property
    def errors(self) -> dict[str, str]:
        with self._lock:
            return dict(self._state.errors)

    # Form lifecycle

    def load_form(self, form: FormSchema) -> FormSchema:
        """Make form the current form, seeding defaults and derived values."""
        with self._lock:
            form = form.model_copy(deep=True)

            # Missing parents evaluate as null; only a cycle makes the form unloadable
            form_data: dict[str, Any] = {}
            for field in form.fields:
                if field.default_value is not None and not field.is_derived:
                    form_data[field.id] = field.default_value
            recompute_all(form.fields, form_data, now=self.clock())

            self._state.current_form = form
            self._state.form_data = form_data
            self._state.errors = {}
            logger.debug(f"Loaded form {form.id} with {len(form.fields)} fields")
            return form.model_copy(deep=True)

    def open_saved_form(self, form_id: str) -> FormSchema:
        with self._lock:
            form = next((f for f in self._state.saved_forms if f.id == form_id), None)
            if form is None:
                raise FormNotFoundError(form_id)
            return self.load_form(form)

    def create_form(self, name: str) -> FormSchema:
        with self._lock:
            form = FormSchema(
                id=generate_form_id(),
                name=name,
                created_at=datetime.now(timezone.utc),
                fields=[],
            )
            self._state.current_form = form
            self._state.form_data = {}
            self._state.errors = {}
            logger.info(f"Created form {form.id} ({name})")
            return form.model_copy(deep=True)

    def rename_form(self, name: str) -> FormSchema:
        with self._lock:
            form = self._require_form()
            form.name = name
            return form.model_copy(deep=True)

    # Structural edits

    def add_field(self, field: FormField) -> FormField:
        with self._lock:
            form = self._require_form()
            field = field.model_copy(deep=True)
            check_integrity(form.fields + [field])
            form.fields.append(field)
            logger.debug(f"Added field {field.id} to form {form.id}")
            return field.model_copy(deep=True)

    def update_field(self, field_id: str, patch: FormFieldUpdate) -> FormField:
        with self._lock:
            form = self._require_form()
            index = form.field_index(field_id)
            if index < 0:
                raise SchemaIntegrityError(f"Field '{field_id}' not found", field_id=field_id)

            updates = patch.model_dump(exclude_unset=True)
            if updates.get("id", field_id) != field_id:
                raise SchemaIntegrityError("Field id can not be changed", field_id=field_id)
            updates.pop("id", None)

            existing = form.fields[index]
            merged = existing.model_dump()
            merged.update(updates)
            if merged.get("type") not in OPTION_FIELD_TYPES:
                merged["options"] = None
            try:
                updated = FormField.model_validate(merged)
            except ValidationError as e:
                first = e.errors()[0]
                location = ".".join(str(part) for part in first["loc"]) or "field"
                raise SchemaIntegrityError(
                    f"Invalid update for field '{field_id}' ({location}): {first['msg']}",
                    field_id=field_id,
                ) from e

            candidate = list(form.fields)
            candidate[index] = updated
            check_integrity(candidate)

            form.fields = candidate
            if existing.is_derived != updated.is_derived:
                # Value belongs to the old role
                self._state.form_data.pop(field_id, None)
            if updated.is_derived:
                self._state.errors.pop(field_id, None)
            return updated.model_copy(deep=True)

    def delete_field(self, field_id: str) -> None:
        with self._lock:
            form = self._require_form()
            if form.field_index(field_id) < 0:
                raise SchemaIntegrityError(f"Field '{field_id}' not found", field_id=field_id)

            dependents = [
                f.id for f in form.fields
                if f.derived and field_id in f.derived.parent_field_ids
            ]
            if dependents:
                raise SchemaIntegrityError(
                    f"Field '{field_id}' is a parent of derived field(s): {', '.join(dependents)}",
                    field_id=field_id,
                )

            form.fields = [f for f in form.fields if f.id != field_id]
            self._state.form_data.pop(field_id, None)
            self._state.errors.pop(field_id, None)

    def reorder_field(self, from_index: int, to_index: int) -> list[str]:
        with self._lock:
            form = self._require_form()
            count = len(form.fields)
            if not (0 <= from_index < count) or not (0 <= to_index < count):
                raise SchemaIntegrityError(
                    f"Reorder indexes ({from_index}, {to_index}) out of range for {count} fields"
                )
            fields = list(form.fields)
            moved = fields.pop(from_index)
            fields.insert(to_index, moved)
            form.fields = fields
            return form.field_ids()

    def recompute(self) -> dict[str, Any]:
        """Refresh every derived value, e.g. after structural edits."""
        with self._lock:
            form = self._require_form()
            recompute_all(form.fields, self._state.form_data, now=self.clock())
            return dict(self._state.form_data)

    # Values and validation

    def set_value(self, field_id: str, value: Any) -> dict[str, Any]:
        with self._lock:
            form = self._require_form()
            field = form.get_field(field_id)
            if field is None:
                raise SchemaIntegrityError(f"Field '{field_id}' not found", field_id=field_id)
            if field.is_derived:
                raise SchemaIntegrityError(
                    f"Field '{field_id}' is derived and can not be edited", field_id=field_id
                )

            if value is None:
                self._state.form_data.pop(field_id, None)
            else:
                self._state.form_data[field_id] = value

            recompute_descendants(form.fields, self._state.form_data, field_id, now=self.clock())

            error = validate_field(field, self._state.form_data.get(field_id), self._state.form_data)
            if error:
                self._state.errors[field_id] = error
            else:
                self._state.errors.pop(field_id, None)

            return dict(self._state.form_data)

    def validate_all(self) -> dict[str, str]:
        with self._lock:
            form = self._require_form()
            self._state.errors = validate_form(form.fields, self._state.form_data)
            return dict(self._state.errors)

    def submit(self) -> dict[str, Any]:
        """Validate everything and return the form data, refusing while errors remain."""
        with self._lock:
            errors = self.validate_all()
            if errors:
                raise FormSubmissionError(errors)
            logger.info(f"Form {self._state.current_form.id} submitted")
            return dict(self._state.form_data)

    # Persistence

    def refresh_saved_forms(self) -> list[FormSchema]:
        with self._lock:
            self._state.saved_forms = self.repository.load_all()
            return self.saved_forms

    def save(self) -> list[FormSchema]:
        """Persist the current form.

        Raises:
            PersistenceError: If storage failed; the session state is unchanged
        """
        with self._lock:
            form = self._require_form()
            try:
                forms = self.repository.upsert(form)
            except PersistenceError:
                logger.exception(f"Error saving form {form.id}")
                raise
            self._state.saved_forms = forms
            return self.saved_forms

    def delete_saved_form(self, form_id: str) -> list[FormSchema]:
        with self._lock:
            try:
                forms = self.repository.remove(form_id)
            except PersistenceError:
                logger.exception(f"Error deleting form {form_id}")
                raise
            self._state.saved_forms = forms
            return self.saved_forms

    def _require_form(self) -> FormSchema:
        if self._state.current_form is None:
            raise NoActiveFormError()
        return self._state.current_form


# Singleton instance
_form_controller: Optional[FormController] = None


def get_form_controller() -> FormController:
    """Get the process-wide FormController, with saved forms loaded"""
    global _form_controller
    if _form_controller is None:
        from repositories.form_repository import get_form_repository

        _form_controller = FormController(get_form_repository())
        _form_controller.refresh_saved_forms()
    return _form_controller


def reset_form_controller():
    """Drop the singleton (useful for testing)."""
    global _form_controller
    _form_controller = None
