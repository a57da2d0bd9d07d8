"""Values API endpoints - filling out the current form"""

from typing import Any

from fastapi import APIRouter, Depends

from schemas.form_state import SetValueIn, SubmitOut, ValidationResultOut
from services.form_controller import FormController, get_form_controller

router = APIRouter()


@router.put("/values/{field_id}/", response_model=ValidationResultOut)
def set_value(field_id: str, data: SetValueIn, controller: FormController = Depends(get_form_controller)):
    """
    Set one field's value.

    Derived fields depending on it are recomputed and the field is
    re-validated. Returns the session's current errors.
    """
    controller.set_value(field_id, data.value)
    errors = controller.errors
    return ValidationResultOut(valid=not errors, errors=errors)


@router.get("/values/", response_model=dict[str, Any])
def get_values(controller: FormController = Depends(get_form_controller)):
    return controller.form_data


@router.post("/validate/", response_model=ValidationResultOut)
def validate_all(controller: FormController = Depends(get_form_controller)):
    errors = controller.validate_all()
    return ValidationResultOut(valid=not errors, errors=errors)


@router.post("/recompute/", response_model=dict[str, Any])
def recompute(controller: FormController = Depends(get_form_controller)):
    return controller.recompute()


@router.post("/submit/", response_model=SubmitOut)
def submit(controller: FormController = Depends(get_form_controller)):
    """Validate every field and return the submitted data, or 422 with the errors"""
    data = controller.submit()
    return SubmitOut(form_id=controller.current_form.id, data=data)
