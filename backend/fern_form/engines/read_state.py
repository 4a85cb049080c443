import logging
import sqlite3
from enum import Enum

from ..db.schema import MAX_ROW_ID, PUBLISHED

logger = logging.getLogger(__name__)

READ_STATUS_META_KEY = "_fern_form_read_status"
BADGE_CAP = 99


class ReadState(str, Enum):
    UNREAD = "unread"
    READ = "read"


def _set_state(conn: sqlite3.Connection, submission_id: int, state: ReadState) -> None:
    conn.execute(
        """
        INSERT INTO submission_meta (submission_id, meta_key, meta_value)
        VALUES (?, ?, ?)
        ON CONFLICT(submission_id, meta_key) DO UPDATE SET meta_value = excluded.meta_value
        """,
        (submission_id, READ_STATUS_META_KEY, state.value),
    )


def mark_unread(conn: sqlite3.Connection, submission_id: int) -> None:
    """Flag a submission as unread without committing.

    Used inside the store transaction so the flag lands atomically with the
    submission row.
    """
    _set_state(conn, submission_id, ReadState.UNREAD)


def mark_as_read(conn: sqlite3.Connection, submission_id: int) -> bool:
    if submission_id <= 0 or submission_id > MAX_ROW_ID:
        return False
    row = conn.execute(
        "SELECT 1 FROM submissions WHERE id = ? AND status = ?",
        (submission_id, PUBLISHED),
    ).fetchone()
    if row is None:
        return False

    current = get_read_state(conn, submission_id)
    if current is ReadState.READ:
        return True

    _set_state(conn, submission_id, ReadState.READ)
    conn.commit()
    logger.debug("Submission %d marked as read", submission_id)
    return True


def get_read_state(conn: sqlite3.Connection, submission_id: int) -> ReadState:
    if submission_id > MAX_ROW_ID:
        return ReadState.UNREAD
    row = conn.execute(
        "SELECT meta_value FROM submission_meta WHERE submission_id = ? AND meta_key = ?",
        (submission_id, READ_STATUS_META_KEY),
    ).fetchone()
    if row is None or row[0] != ReadState.READ.value:
        return ReadState.UNREAD
    return ReadState.READ


def unread_ids(conn: sqlite3.Connection) -> list[int]:
    rows = conn.execute(
        """
        SELECT s.id
        FROM submissions s
        LEFT JOIN submission_meta m
          ON m.submission_id = s.id AND m.meta_key = ?
        WHERE s.status = ?
          AND (m.meta_value IS NULL OR m.meta_value = ?)
        ORDER BY s.id
        """,
        (READ_STATUS_META_KEY, PUBLISHED, ReadState.UNREAD.value),
    ).fetchall()
    return [int(row[0]) for row in rows]


def unread_count(conn: sqlite3.Connection) -> int:
    return len(unread_ids(conn))


def badge_label(count: int) -> str:
    if count <= 0:
        return ""
    return f"{BADGE_CAP}+" if count > BADGE_CAP else str(count)
