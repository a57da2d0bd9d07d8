"""Form engine API routes"""

from fastapi import APIRouter
from . import saved_forms, session, fields, values

router = APIRouter()

router.include_router(saved_forms.router, prefix="/forms", tags=["Saved Forms"])
router.include_router(session.router, prefix="/session", tags=["Session"])
router.include_router(fields.router, prefix="/session/fields", tags=["Fields"])
router.include_router(values.router, prefix="/session", tags=["Values"])
