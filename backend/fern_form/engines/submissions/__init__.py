from .models import (
    Aborted,
    PersistFailed,
    Skipped,
    Stored,
    StoreResult,
    Submission,
    SubmissionDeleteError,
    SubmissionError,
    SubmissionValidationError,
)
from .store import SubmissionStore, form_slug, hard_delete

__all__ = [
    "Aborted",
    "PersistFailed",
    "Skipped",
    "StoreResult",
    "Stored",
    "Submission",
    "SubmissionDeleteError",
    "SubmissionError",
    "SubmissionStore",
    "SubmissionValidationError",
    "form_slug",
    "hard_delete",
]
