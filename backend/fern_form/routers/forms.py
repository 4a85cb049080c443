from fastapi import APIRouter, Depends

from ..api import FormContext
from .deps import form_context

router = APIRouter(prefix="", tags=["forms"])


@router.get("/forms")
def list_forms(ctx: FormContext = Depends(form_context)):
    return ctx.store().list_forms()
