import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from ..api import FormContext, store_submission
from ..engines.read_state import badge_label, mark_as_read, unread_ids
from ..engines.rendering import render_fields
from ..engines.submissions import Submission, SubmissionDeleteError, SubmissionValidationError
from .deps import form_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["submissions"])


def _get_or_404(ctx: FormContext, submission_id: int) -> Submission:
    submission = ctx.store().get_by_id(submission_id)
    if submission is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return submission


@router.post("/forms/{form_name}/submissions")
def create_submission(
    form_name: str,
    payload: dict[str, Any] = Body(...),
    ctx: FormContext = Depends(form_context),
):
    try:
        result = store_submission(ctx, form_name, payload)
    except SubmissionValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    response: dict[str, Any] = {"id": result.submission_id, "status": result.status}
    if result.reason:
        response["reason"] = result.reason
    return response


@router.get("/submissions")
def list_submissions(
    form: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    ctx: FormContext = Depends(form_context),
):
    return ctx.store().list_submissions(form=form, limit=limit, offset=offset)


@router.get("/submissions/unread")
def get_unread(ctx: FormContext = Depends(form_context)):
    ids = unread_ids(ctx.conn)
    return {"count": len(ids), "badge": badge_label(len(ids)), "ids": ids}


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: int, ctx: FormContext = Depends(form_context)):
    submission = _get_or_404(ctx, submission_id)
    mark_as_read(ctx.conn, submission_id)
    payload = submission.to_dict()
    payload["read_state"] = "read"
    return payload


@router.get("/submissions/{submission_id}/fields")
def get_submission_fields(submission_id: int, ctx: FormContext = Depends(form_context)):
    submission = _get_or_404(ctx, submission_id)
    return {
        "id": submission.id,
        "form_name": submission.form_name,
        "title": submission.title,
        "fields": render_fields(submission.data, ctx.hooks),
    }


@router.put("/submissions/{submission_id}")
def update_submission(
    submission_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: FormContext = Depends(form_context),
):
    if not payload:
        raise HTTPException(status_code=400, detail="Submission cannot be empty")
    submission = _get_or_404(ctx, submission_id)
    updated = ctx.store().update(submission, payload)
    return {"updated": updated, "submission": submission.to_dict()}


@router.delete("/submissions/{submission_id}")
def delete_submission(submission_id: int, ctx: FormContext = Depends(form_context)):
    submission = _get_or_404(ctx, submission_id)
    try:
        deleted = ctx.store().delete(submission)
    except SubmissionDeleteError as exc:
        logger.exception("Failed to delete submission %d", submission_id)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"id": submission_id, "deleted": deleted}
