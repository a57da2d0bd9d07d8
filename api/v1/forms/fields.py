"""Fields API endpoints - structural edits of the current form"""

from fastapi import APIRouter, Depends, status

from schemas.form import FormField, FormFieldUpdate, generate_field_id
from schemas.form_state import FormulaCheckIn, FormulaCheckOut, ReorderFieldIn
from services.form_controller import FormController, get_form_controller
from services.formula_service import check_formula

router = APIRouter()


@router.post("/", response_model=FormField, status_code=status.HTTP_201_CREATED)
def add_field(field: FormField, controller: FormController = Depends(get_form_controller)):
    """
    Append a field to the current form.

    Derived fields must reference existing parents and may not introduce a
    dependency cycle. Derived values are not recomputed until the next value
    change or an explicit recompute.
    """
    return controller.add_field(field)


@router.get("/new-id/")
def new_field_id():
    return {"id": generate_field_id()}


@router.patch("/{field_id}/", response_model=FormField)
def update_field(
    field_id: str,
    patch: FormFieldUpdate,
    controller: FormController = Depends(get_form_controller),
):
    return controller.update_field(field_id, patch)


@router.delete("/{field_id}/", status_code=status.HTTP_204_NO_CONTENT)
def delete_field(field_id: str, controller: FormController = Depends(get_form_controller)):
    """Remove a field along with its value and error"""
    controller.delete_field(field_id)


@router.post("/reorder/", response_model=list[str])
def reorder_field(data: ReorderFieldIn, controller: FormController = Depends(get_form_controller)):
    """Move one field; returns the new field id order"""
    return controller.reorder_field(data.from_index, data.to_index)


@router.get("/{field_id}/eligible-parents/", response_model=list[FormField])
def eligible_parents(field_id: str, controller: FormController = Depends(get_form_controller)):
    """Fields the given field may use as derived parents"""
    form = controller.current_form
    if form is None:
        return []
    return form.eligible_parent_fields(field_id)


@router.post("/check-formula/", response_model=FormulaCheckOut)
def check_field_formula(data: FormulaCheckIn):
    error = check_formula(data.formula, data.parent_field_ids)
    return FormulaCheckOut(valid=error is None, error=error)
