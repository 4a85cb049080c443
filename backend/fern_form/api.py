"""Public entry points for storing and managing form submissions.

Every call takes an explicit :class:`FormContext`; nothing here keeps
process-wide state.
"""

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from .config import Config
from .engines.hooks import HookBus
from .engines.submissions import StoreResult, Submission, SubmissionStore


@dataclass
class FormContext:
    conn: sqlite3.Connection
    config: Config = field(default_factory=Config)
    hooks: HookBus = field(default_factory=HookBus)
    clock: Callable[[], datetime] | None = None

    def store(self) -> SubmissionStore:
        return SubmissionStore(self.conn, self.config, self.hooks, clock=self.clock)


def store_submission(ctx: FormContext, form_name: str, submission: dict[str, Any]) -> StoreResult:
    return ctx.store().store(form_name, submission)


def store_form(ctx: FormContext, form_name: str, submission: dict[str, Any]) -> int | None:
    """Store a submission and return its id.

    Returns ``None`` when a filter aborted the write, when retention is
    disabled, or when persistence failed (the ``submission_error`` action has
    already fired in that case). Raises ``SubmissionValidationError`` for an
    empty form name or payload.
    """
    return store_submission(ctx, form_name, submission).submission_id


def get_submission_by_id(ctx: FormContext, submission_id: int) -> Submission | None:
    return ctx.store().get_by_id(submission_id)


def update_form(ctx: FormContext, submission_id: int, submission: dict[str, Any]) -> None:
    store = ctx.store()
    existing = store.get_by_id(submission_id)
    if existing is None:
        return
    store.update(existing, submission)


def delete_form(ctx: FormContext, submission_id: int) -> None:
    store = ctx.store()
    existing = store.get_by_id(submission_id)
    if existing is None:
        return
    store.delete(existing)
