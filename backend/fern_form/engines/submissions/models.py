from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from ..read_state import ReadState


class SubmissionError(RuntimeError):
    pass


class SubmissionValidationError(SubmissionError, ValueError):
    pass


class SubmissionDeleteError(SubmissionError):
    pass


class Submission:
    """In-memory view of one stored (or not yet stored) form submission.

    Instances are value holders. The store owns the persisted row, so an
    instance goes stale once the row is deleted elsewhere.
    """

    def __init__(
        self,
        form_name: str,
        data: dict[str, Any],
        submission_id: int | None = None,
        *,
        title: str = "",
        created_at: datetime | None = None,
        read_state: ReadState = ReadState.UNREAD,
    ) -> None:
        if not form_name or not str(form_name).strip():
            raise SubmissionValidationError("Form name cannot be empty")
        if not data:
            raise SubmissionValidationError("Submission cannot be empty")

        self.form_name = str(form_name)
        self.data = dict(data)
        self._id = submission_id
        self.title = title
        self.created_at = created_at
        self.read_state = read_state

    @property
    def id(self) -> int | None:
        return self._id

    def assign_id(self, submission_id: int) -> None:
        if self._id is not None and self._id != submission_id:
            raise SubmissionError(f"Submission already has id {self._id}")
        self._id = int(submission_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self._id,
            "form_name": self.form_name,
            "title": self.title,
            "data": self.data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "read_state": self.read_state.value,
        }

    def __repr__(self) -> str:
        return f"Submission(id={self._id!r}, form_name={self.form_name!r})"


@dataclass(frozen=True)
class StoreResult:
    submission_id: int | None = None
    reason: str | None = field(default=None)

    status: ClassVar[str] = "unknown"

    @property
    def ok(self) -> bool:
        return self.status == "stored"


@dataclass(frozen=True)
class Stored(StoreResult):
    status: ClassVar[str] = "stored"


@dataclass(frozen=True)
class Aborted(StoreResult):
    status: ClassVar[str] = "aborted"


@dataclass(frozen=True)
class Skipped(StoreResult):
    """Retention is disabled, so nothing was written."""

    status: ClassVar[str] = "skipped"


@dataclass(frozen=True)
class PersistFailed(StoreResult):
    status: ClassVar[str] = "failed"
