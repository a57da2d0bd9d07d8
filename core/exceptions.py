"""Exceptions raised by the form engine.

Field validation failures are not exceptions: they are returned as data in the
errors map. Formula failures are contained by the derived field engine. What is
left are structural problems with a schema, operations without an active form,
refused submissions and storage failures.
"""


class FormEngineError(Exception):
    """Base class for form engine errors"""


class SchemaIntegrityError(FormEngineError, ValueError):
    """A mutation would leave the form schema structurally invalid.

    Examples: a derived field referencing a missing parent, a dependency cycle,
    a duplicate field id.
    """

    def __init__(self, message: str, field_id: str | None = None):
        super().__init__(message)
        self.field_id = field_id


class NoActiveFormError(FormEngineError):
    """An operation needs a current form but none is loaded"""

    def __init__(self, message: str = "No active form"):
        super().__init__(message)


class FormNotFoundError(FormEngineError, LookupError):
    def __init__(self, form_id: str):
        super().__init__(f"Form '{form_id}' not found")
        self.form_id = form_id


class FormSubmissionError(FormEngineError):
    """Submission refused because at least one field is in error"""

    def __init__(self, errors: dict[str, str]):
        super().__init__(f"Form has {len(errors)} invalid field(s)")
        self.errors = dict(errors)


class PersistenceError(FormEngineError):
    """The storage backend could not complete a read or write"""
