import asyncio
import logging
from pathlib import Path

from .config import load_config
from .db.database import get_db
from .engines.hooks import HookBus
from .engines.retention import SCHEDULED_CLEANUP_JOB, SweepReport, cleanup_old_submissions

logger = logging.getLogger(__name__)


def run_scheduled_cleanup(hooks: HookBus | None = None, db_path: str | Path | None = None) -> SweepReport:
    conn = get_db(db_path)
    try:
        config = load_config(conn, hooks)
        return cleanup_old_submissions(conn, config)
    finally:
        conn.close()


def _resolve_interval_hours(hooks: HookBus | None, db_path: str | Path | None) -> int:
    conn = get_db(db_path)
    try:
        return load_config(conn, hooks).cleanup_interval_hours
    finally:
        conn.close()


class CleanupScheduler:
    """Runs the retention sweep on a fixed interval in a worker thread.

    Overlapping sweeps are prevented only by refusing to start a second task.
    """

    def __init__(self, hooks: HookBus | None = None, db_path: str | Path | None = None) -> None:
        self.hooks = hooks
        self.db_path = db_path
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.to_thread(run_scheduled_cleanup, self.hooks, self.db_path)
            except Exception:
                logger.exception("Scheduled %s run failed", SCHEDULED_CLEANUP_JOB)

            try:
                interval_hours = await asyncio.to_thread(_resolve_interval_hours, self.hooks, self.db_path)
            except Exception:
                logger.exception("Failed to resolve cleanup interval")
                interval_hours = 24
            await asyncio.sleep(interval_hours * 3600)

    def start(self) -> None:
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._loop(), name=SCHEDULED_CLEANUP_JOB)
        logger.info("Cleanup scheduler started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cleanup scheduler stopped")
