"""Validation Service - field rule evaluation

Validation failures are returned as data (one message per field), never raised.
Rules run in a fixed order and the first failing rule wins.
"""

import math
import re
from typing import Any, Iterable, Mapping, Optional

from schemas.form import FormField

EMAIL_REGEX = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
DIGIT_REGEX = re.compile(r"\d")
PASSWORD_MIN_LENGTH = 8


def is_empty(value: Any) -> bool:
    """Empty per the `required` rule: absent, null, empty string or empty sequence."""
    if value is None:
        return True
    if isinstance(value, str) and value == "":
        return True
    if isinstance(value, (list, tuple, set, frozenset)) and len(value) == 0:
        return True
    return False


def value_to_string(value: Any) -> str:
    """String form of a value for the length and pattern rules."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else value_to_string(v) for v in value)
    return str(value)


def validate_field(
    field: FormField,
    value: Any,
    form_data: Optional[Mapping[str, Any]] = None,
) -> Optional[str]:
    """Return the first failing rule's message for value, or None when valid."""
    # Derived fields are computed, not user input
    if field.is_derived:
        return None

    rules = field.validations

    if rules.required and is_empty(value):
        return f"{field.label} is required"

    # Nothing entered and not required: no further rules
    if not rules.required and (is_empty(value) or value is False):
        return None

    string_value = value_to_string(value)

    if rules.min_length and len(string_value) < rules.min_length:
        return f"{field.label} must be at least {rules.min_length} characters"

    if rules.max_length and len(string_value) > rules.max_length:
        return f"{field.label} must not exceed {rules.max_length} characters"

    if rules.email and not EMAIL_REGEX.fullmatch(string_value):
        return f"{field.label} must be a valid email address"

    if rules.password_rule:
        if len(string_value) < PASSWORD_MIN_LENGTH:
            return f"{field.label} must be at least {PASSWORD_MIN_LENGTH} characters long"
        if not DIGIT_REGEX.search(string_value):
            return f"{field.label} must contain at least one number"

    return None


def validate_form(fields: Iterable[FormField], form_data: Mapping[str, Any]) -> dict[str, str]:
    """Validate every field, returning only the failing ones."""
    errors: dict[str, str] = {}
    for field in fields:
        error = validate_field(field, form_data.get(field.id), form_data)
        if error:
            errors[field.id] = error
    return errors
