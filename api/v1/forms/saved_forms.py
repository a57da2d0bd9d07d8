"""Saved forms API endpoints - the persisted form collection"""

from fastapi import APIRouter, Depends, HTTPException, status

from schemas.form import FormSchema
from services.form_controller import FormController, get_form_controller

router = APIRouter()


@router.get("/", response_model=list[FormSchema])
def list_saved_forms(controller: FormController = Depends(get_form_controller)):
    """List all saved forms, re-read from storage"""
    return controller.refresh_saved_forms()


@router.get("/{form_id}/", response_model=FormSchema)
def get_saved_form(form_id: str, controller: FormController = Depends(get_form_controller)):
    form = next((f for f in controller.saved_forms if f.id == form_id), None)
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


@router.delete("/{form_id}/", status_code=status.HTTP_204_NO_CONTENT)
def delete_saved_form(form_id: str, controller: FormController = Depends(get_form_controller)):
    """
    Delete a saved form.

    The active session keeps working on its current form, even if that form
    is the one deleted here.
    """
    controller.delete_saved_form(form_id)
