"""Session API endpoints - the active form and its lifecycle"""

from fastapi import APIRouter, Depends, status

from schemas.form import FormSchema
from schemas.form_state import CreateFormIn, FormState, RenameFormIn
from services.form_controller import FormController, get_form_controller

router = APIRouter()


@router.get("/", response_model=FormState)
def get_session_state(controller: FormController = Depends(get_form_controller)):
    """Current form, saved forms, values and errors"""
    return controller.state


@router.post("/forms/", response_model=FormSchema, status_code=status.HTTP_201_CREATED)
def create_form(data: CreateFormIn, controller: FormController = Depends(get_form_controller)):
    """Start a new, empty form. Unsaved changes to the previous form are discarded."""
    return controller.create_form(data.name)


@router.post("/forms/{form_id}/open/", response_model=FormState)
def open_saved_form(form_id: str, controller: FormController = Depends(get_form_controller)):
    controller.open_saved_form(form_id)
    return controller.state


@router.put("/form/", response_model=FormState)
def load_form(form: FormSchema, controller: FormController = Depends(get_form_controller)):
    """Make an arbitrary schema the current form"""
    controller.load_form(form)
    return controller.state


@router.patch("/form/", response_model=FormSchema)
def rename_form(data: RenameFormIn, controller: FormController = Depends(get_form_controller)):
    return controller.rename_form(data.name)


@router.post("/save/", response_model=list[FormSchema])
def save_form(controller: FormController = Depends(get_form_controller)):
    """
    Persist the current form.

    Saving replaces a stored form with the same id, or appends it.
    """
    return controller.save()
