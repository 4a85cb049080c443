from __future__ import annotations

import hashlib
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Callable

from ...config import Config
from ...db.schema import MAX_ROW_ID, PUBLISHED
from ..hooks import Hook, HookBus
from ..read_state import READ_STATUS_META_KEY, ReadState, get_read_state, mark_unread
from ..sanitizer import sanitize, slugify
from .codec import ContentEncodingError, decode_content, encode_content
from .models import (
    Aborted,
    PersistFailed,
    Skipped,
    Stored,
    StoreResult,
    Submission,
    SubmissionDeleteError,
    SubmissionError,
)

logger = logging.getLogger(__name__)

TITLE_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"
DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_db_time(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(DB_TIME_FORMAT)


def parse_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def form_slug(form_name: str) -> str:
    slug = slugify(form_name)
    if slug:
        return slug
    # Names made only of symbols or non-latin script still need a stable slug.
    return "form-" + hashlib.sha256(form_name.encode("utf-8")).hexdigest()[:12]


def hard_delete(conn: sqlite3.Connection, submission_id: int) -> bool:
    """Remove a submission row with its meta and category links, then commit."""
    conn.execute("DELETE FROM submission_meta WHERE submission_id = ?", (submission_id,))
    conn.execute("DELETE FROM submission_categories WHERE submission_id = ?", (submission_id,))
    cursor = conn.execute("DELETE FROM submissions WHERE id = ?", (submission_id,))
    conn.commit()
    return cursor.rowcount > 0


class SubmissionStore:
    def __init__(
        self,
        conn: sqlite3.Connection,
        config: Config,
        hooks: HookBus | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.conn = conn
        self.config = config
        self.hooks = hooks if hooks is not None else HookBus()
        self._clock = clock or _utcnow

    def _sanitize(self, form_name: str, data: dict[str, Any]) -> dict[str, Any]:
        return sanitize(
            data,
            form_name,
            preserve_key_casing=self.config.preserve_key_casing,
            hooks=self.hooks,
            min_long_text_words=self.config.min_long_text_words,
        )

    def _ensure_category(self, slug: str, name: str) -> int:
        row = self.conn.execute("SELECT id FROM form_categories WHERE slug = ?", (slug,)).fetchone()
        if row is not None:
            return int(row[0])
        cursor = self.conn.execute(
            "INSERT INTO form_categories (slug, name) VALUES (?, ?)",
            (slug, name),
        )
        logger.info("Created form category %s", slug)
        return int(cursor.lastrowid)

    def store(self, form_name: str, raw_data: dict[str, Any]) -> StoreResult:
        return self.store_submission(Submission(form_name, raw_data))

    def store_submission(self, submission: Submission) -> StoreResult:
        form_name = submission.form_name
        if self.hooks.should_abort(Hook.SUBMISSION_SHOULD_ABORT, form_name, submission.data):
            logger.info("Storing submission for %s aborted by filter", form_name)
            return Aborted()

        if not self.config.retention_enabled:
            logger.debug("Retention disabled; submission for %s not persisted", form_name)
            return Skipped()

        data = self.hooks.apply_filters(Hook.SUBMISSION_DATA, submission.data, form_name)
        slug = form_slug(form_name)
        now = self._clock()
        default_title = f"{form_name} at {now.strftime(TITLE_TIME_FORMAT)}"
        title = str(self.hooks.apply_filters(Hook.SUBMISSION_TITLE, default_title, form_name, data))
        sanitized = self._sanitize(form_name, data)
        if not sanitized:
            # Stored rows must decode to non-empty data.
            reason = "Submission data is empty after filtering"
            logger.error("Failed to store submission for %s: %s", form_name, reason)
            self.hooks.do_action(Hook.SUBMISSION_ERROR, reason, slug, data)
            return PersistFailed(reason=reason)

        try:
            content = encode_content(sanitized)
            category_id = self._ensure_category(slug, form_name)
            cursor = self.conn.execute(
                """
                INSERT INTO submissions (title, content, status, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (title, content, PUBLISHED, format_db_time(now)),
            )
            submission_id = int(cursor.lastrowid)
            self.conn.execute(
                "INSERT INTO submission_categories (submission_id, category_id) VALUES (?, ?)",
                (submission_id, category_id),
            )
            mark_unread(self.conn, submission_id)
            self.conn.commit()
        except (sqlite3.Error, ContentEncodingError) as exc:
            self.conn.rollback()
            logger.error("Failed to store submission for %s: %s", form_name, exc)
            self.hooks.do_action(Hook.SUBMISSION_ERROR, str(exc), slug, data)
            return PersistFailed(reason=str(exc))

        submission.assign_id(submission_id)
        submission.data = sanitized
        submission.title = title
        submission.created_at = now
        submission.read_state = ReadState.UNREAD

        logger.info("Stored submission %d for form %s", submission_id, slug)
        self.hooks.do_action(Hook.SUBMISSION_STORED, submission_id, slug, data)
        return Stored(submission_id=submission_id)

    def get_by_id(self, submission_id: int) -> Submission | None:
        if not isinstance(submission_id, int) or not 0 < submission_id <= MAX_ROW_ID:
            return None

        row = self.conn.execute(
            "SELECT id, title, content, status, created_at FROM submissions WHERE id = ?",
            (submission_id,),
        ).fetchone()
        if row is None or row["status"] != PUBLISHED:
            return None

        category = self.conn.execute(
            """
            SELECT c.slug, c.name
            FROM form_categories c
            JOIN submission_categories sc ON sc.category_id = c.id
            WHERE sc.submission_id = ?
            ORDER BY c.id
            LIMIT 1
            """,
            (submission_id,),
        ).fetchone()
        if category is None:
            return None

        data = decode_content(row["content"])
        if not data:
            logger.warning("Submission %d has no readable content", submission_id)
            return None

        return Submission(
            category["name"],
            data,
            int(row["id"]),
            title=row["title"],
            created_at=parse_db_time(row["created_at"]),
            read_state=get_read_state(self.conn, submission_id),
        )

    def update(self, submission: Submission, new_data: dict[str, Any]) -> bool:
        if submission.id is None:
            raise SubmissionError("Cannot update submission without ID")
        submission_id = submission.id
        form_name = submission.form_name

        if self.hooks.should_abort(Hook.UPDATE_SUBMISSION_SHOULD_ABORT, form_name, submission.data):
            logger.info("Update of submission %d aborted by filter", submission_id)
            return False

        data = self.hooks.apply_filters(Hook.UPDATE_SUBMISSION_DATA, new_data, form_name)
        sanitized = self._sanitize(form_name, data)
        if not sanitized:
            logger.error("Refusing to update submission %d with empty data", submission_id)
            self.hooks.do_action(Hook.UPDATE_SUBMISSION_ERROR, submission_id, form_name, data)
            return False

        row = self.conn.execute("SELECT title FROM submissions WHERE id = ?", (submission_id,)).fetchone()
        current_title = row["title"] if row is not None else submission.title
        title = str(self.hooks.apply_filters(Hook.UPDATE_SUBMISSION_TITLE, current_title, form_name, data))

        try:
            content = encode_content(sanitized)
            cursor = self.conn.execute(
                """
                UPDATE submissions
                SET title = ?, content = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (title, content, format_db_time(self._clock()), submission_id, PUBLISHED),
            )
            updated = cursor.rowcount > 0
            if updated:
                self.conn.commit()
            else:
                self.conn.rollback()
        except (sqlite3.Error, ContentEncodingError) as exc:
            self.conn.rollback()
            logger.error("Failed to update submission %d: %s", submission_id, exc)
            updated = False

        if not updated:
            self.hooks.do_action(Hook.UPDATE_SUBMISSION_ERROR, submission_id, form_name, data)
            return False

        logger.info("Updated submission %d", submission_id)
        self.hooks.do_action(Hook.SUBMISSION_UPDATED, submission_id, form_name, data)
        submission.data = sanitized
        submission.title = title
        return True

    def delete(self, submission: Submission) -> bool:
        if submission.id is None:
            raise SubmissionDeleteError("Cannot delete submission without ID")
        submission_id = submission.id
        form_name = submission.form_name

        self.hooks.do_action(Hook.BEFORE_DELETE, submission_id, form_name)

        if self.hooks.should_abort(Hook.DELETE_SUBMISSION_SHOULD_ABORT, form_name, submission.data):
            logger.info("Deletion of submission %d aborted by filter", submission_id)
            return False

        try:
            deleted = hard_delete(self.conn, submission_id)
        except sqlite3.Error as exc:
            self.conn.rollback()
            raise SubmissionDeleteError(f"Failed to delete submission: {submission_id}") from exc
        if not deleted:
            raise SubmissionDeleteError(f"Failed to delete submission: {submission_id}")

        logger.info("Deleted submission %d", submission_id)
        self.hooks.do_action(Hook.AFTER_DELETE, submission_id, form_name)
        return True

    def list_submissions(
        self,
        form: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        clauses = ["s.status = ?"]
        params: list[Any] = [READ_STATUS_META_KEY, PUBLISHED]
        if form:
            clauses.append("c.slug = ?")
            params.append(form_slug(form))
        params.extend([max(1, limit), max(0, offset)])
        where = " AND ".join(clauses)

        rows = self.conn.execute(
            f"""
            SELECT s.id, s.title, s.created_at, c.slug, c.name, m.meta_value AS read_status
            FROM submissions s
            JOIN submission_categories sc ON sc.submission_id = s.id
            JOIN form_categories c ON c.id = sc.category_id
            LEFT JOIN submission_meta m
              ON m.submission_id = s.id AND m.meta_key = ?
            WHERE {where}
            ORDER BY s.created_at DESC, s.id DESC
            LIMIT ? OFFSET ?
            """,
            params,
        ).fetchall()

        return [
            {
                "id": int(row["id"]),
                "title": row["title"],
                "form_name": row["name"],
                "form_slug": row["slug"],
                "created_at": row["created_at"],
                "read_state": ReadState.READ.value
                if row["read_status"] == ReadState.READ.value
                else ReadState.UNREAD.value,
            }
            for row in rows
        ]

    def list_forms(self) -> list[dict[str, Any]]:
        rows = self.conn.execute(
            """
            SELECT c.slug, c.name, COUNT(sc.submission_id) AS submission_count
            FROM form_categories c
            LEFT JOIN submission_categories sc ON sc.category_id = c.id
            GROUP BY c.id
            ORDER BY c.name
            """
        ).fetchall()
        return [
            {"slug": row["slug"], "name": row["name"], "submission_count": int(row["submission_count"])}
            for row in rows
        ]
