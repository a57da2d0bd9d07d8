"""Form schema models"""

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"


OPTION_FIELD_TYPES = {FieldType.SELECT, FieldType.RADIO}


class CamelModel(BaseModel):
    """Base model using camelCase keys on the wire and in storage"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidationRules(CamelModel):
    required: Optional[bool] = None
    min_length: Optional[int] = Field(None, ge=0)
    max_length: Optional[int] = Field(None, ge=0)
    email: Optional[bool] = None
    password_rule: Optional[bool] = None  # min 8 chars, at least one number


class SelectOption(CamelModel):
    value: str
    label: str


class DerivedConfig(CamelModel):
    parent_field_ids: list[str] = Field(default_factory=list)
    formula: str


class FormField(CamelModel):
    """One input definition within a form"""
    id: str = Field(..., min_length=1)
    type: FieldType = FieldType.TEXT
    label: str = ""
    default_value: Any = None
    validations: ValidationRules = Field(default_factory=ValidationRules)
    options: Optional[list[SelectOption]] = None
    derived: Optional[DerivedConfig] = None
    placeholder: Optional[str] = None

    @model_validator(mode="after")
    def option_values_unique(self):
        if self.options:
            seen = set()
            for option in self.options:
                if option.value in seen:
                    raise ValueError(f"Duplicate option value '{option.value}' in field '{self.id}'")
                seen.add(option.value)
        return self

    @property
    def is_derived(self) -> bool:
        return self.derived is not None

    @property
    def is_complete(self) -> bool:
        return bool(self.label and self.label.strip())


class FormFieldUpdate(CamelModel):
    """Partial update of a field. The id itself can not be changed."""
    id: Optional[str] = None
    type: Optional[FieldType] = None
    label: Optional[str] = None
    default_value: Any = None
    validations: Optional[ValidationRules] = None
    options: Optional[list[SelectOption]] = None
    derived: Optional[DerivedConfig] = None
    placeholder: Optional[str] = None


class FormSchema(CamelModel):
    """Named, ordered definition of a form's fields"""
    id: str = Field(..., min_length=1)
    name: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    fields: list[FormField] = Field(default_factory=list)

    def get_field(self, field_id: str) -> Optional[FormField]:
        return next((f for f in self.fields if f.id == field_id), None)

    def field_index(self, field_id: str) -> int:
        for index, field in enumerate(self.fields):
            if field.id == field_id:
                return index
        return -1

    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]

    def eligible_parent_fields(self, field_id: Optional[str] = None) -> list[FormField]:
        """Fields a derived field may pick as parents.

        Everything except the field itself and fields that are derived
        themselves.
        """
        return [f for f in self.fields if f.id != field_id and not f.is_derived]


def generate_form_id() -> str:
    return f"form_{int(time.time() * 1000)}"


def generate_field_id() -> str:
    return f"field_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"
