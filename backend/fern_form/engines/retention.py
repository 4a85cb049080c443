import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from ..config import Config
from .submissions.store import format_db_time, hard_delete

logger = logging.getLogger(__name__)

SCHEDULED_CLEANUP_JOB = "scheduled_cleanup"


@dataclass
class SweepReport:
    cutoff: datetime | None = None
    batches: list[int] = field(default_factory=list)
    deleted: int = 0
    failed_ids: list[int] = field(default_factory=list)
    skipped: bool = False


def _fetch_batch(
    conn: sqlite3.Connection,
    cutoff: str,
    batch_size: int,
    exclude: set[int],
) -> list[int]:
    params: list[object] = [cutoff]
    exclusion = ""
    if exclude:
        exclusion = f"AND id NOT IN ({', '.join('?' for _ in exclude)})"
        params.extend(sorted(exclude))
    params.append(batch_size)
    rows = conn.execute(
        f"""
        SELECT id FROM submissions
        WHERE created_at < ? {exclusion}
        ORDER BY created_at, id
        LIMIT ?
        """,
        params,
    ).fetchall()
    return [int(row[0]) for row in rows]


def cleanup_old_submissions(
    conn: sqlite3.Connection,
    config: Config,
    batch_size: int | None = None,
    now: datetime | None = None,
) -> SweepReport:
    """Hard-delete submissions created before ``now - retention_days``.

    Works in batches of ``batch_size`` and stops at the first short batch.
    A submission that fails to delete is logged and left out of later
    batches, so the sweep always terminates.
    """
    if not config.retention_enabled:
        logger.debug("Retention disabled; skipping cleanup")
        return SweepReport(skipped=True)

    size = max(1, int(batch_size or config.cleanup_batch_size))
    current = now or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=config.retention_days)
    cutoff_text = format_db_time(cutoff)

    report = SweepReport(cutoff=cutoff)
    failed: set[int] = set()

    while True:
        batch = _fetch_batch(conn, cutoff_text, size, failed)
        for submission_id in batch:
            try:
                if hard_delete(conn, submission_id):
                    report.deleted += 1
                    continue
                logger.warning("Submission %d vanished before cleanup could delete it", submission_id)
            except sqlite3.Error:
                conn.rollback()
                logger.exception("Failed to delete expired submission %d", submission_id)
            failed.add(submission_id)
            report.failed_ids.append(submission_id)

        report.batches.append(len(batch))
        if len(batch) < size:
            break

    logger.info(
        "Cleanup removed %d submission(s) older than %s in %d batch(es)",
        report.deleted,
        cutoff_text,
        len(report.batches),
    )
    return report
