"""Live session state and request/response schemas for the session API"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from schemas.form import CamelModel, FormSchema


class FormState(CamelModel):
    """The live session data.

    form_data and errors are sparse: a missing key means "no value entered"
    and "valid" respectively.
    """
    current_form: Optional[FormSchema] = None
    saved_forms: list[FormSchema] = Field(default_factory=list)
    form_data: dict[str, Any] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)


class CreateFormIn(BaseModel):
    name: str = Field("Untitled Form", min_length=1, max_length=200)


class RenameFormIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class ReorderFieldIn(CamelModel):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class SetValueIn(BaseModel):
    value: Any = None


class ValidationResultOut(BaseModel):
    valid: bool
    errors: dict[str, str]


class SubmitOut(BaseModel):
    form_id: str
    data: dict[str, Any]


class FormulaCheckIn(CamelModel):
    formula: str
    parent_field_ids: list[str] = Field(default_factory=list)


class FormulaCheckOut(BaseModel):
    valid: bool
    error: Optional[str] = None
