from datetime import datetime, timezone
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..config import load_config
from ..engines.hooks import HookBus
from .deps import db_conn, get_hooks

router = APIRouter(prefix="", tags=["settings"])


class UpdateSettingsRequest(BaseModel):
    retention_days: int | None = None
    disable_retention: bool = False
    min_long_text_words: int | None = None
    preserve_key_casing: bool | None = None
    cleanup_batch_size: int | None = None
    cleanup_interval_hours: int | None = None


def _ensure_settings_row(db: sqlite3.Connection) -> None:
    db.execute(
        """
        INSERT INTO settings (id)
        VALUES (1)
        ON CONFLICT(id) DO NOTHING
        """
    )
    db.commit()


def _get_settings_or_500(db: sqlite3.Connection, hooks: HookBus) -> dict[str, Any]:
    _ensure_settings_row(db)
    row = db.execute("SELECT * FROM settings WHERE id = 1").fetchone()
    if row is None:
        raise HTTPException(status_code=500, detail="Settings row missing")
    stored = dict(row)
    stored["preserve_key_casing"] = bool(stored.get("preserve_key_casing"))
    return {"stored": stored, "effective": load_config(db, hooks).to_dict()}


@router.get("/settings")
def get_settings(db: sqlite3.Connection = Depends(db_conn), hooks: HookBus = Depends(get_hooks)):
    return _get_settings_or_500(db, hooks)


@router.put("/settings")
def update_settings(
    payload: UpdateSettingsRequest,
    db: sqlite3.Connection = Depends(db_conn),
    hooks: HookBus = Depends(get_hooks),
):
    updates: dict[str, Any] = {}

    if payload.disable_retention:
        updates["retention_days"] = None
    elif payload.retention_days is not None:
        updates["retention_days"] = payload.retention_days

    if payload.min_long_text_words is not None:
        if payload.min_long_text_words < 0:
            raise HTTPException(status_code=400, detail="min_long_text_words must be >= 0")
        updates["min_long_text_words"] = payload.min_long_text_words

    if payload.preserve_key_casing is not None:
        updates["preserve_key_casing"] = 1 if payload.preserve_key_casing else 0

    if payload.cleanup_batch_size is not None:
        if payload.cleanup_batch_size < 1 or payload.cleanup_batch_size > 1000:
            raise HTTPException(status_code=400, detail="cleanup_batch_size must be between 1 and 1000")
        updates["cleanup_batch_size"] = payload.cleanup_batch_size

    if payload.cleanup_interval_hours is not None:
        if payload.cleanup_interval_hours < 1:
            raise HTTPException(status_code=400, detail="cleanup_interval_hours must be >= 1")
        updates["cleanup_interval_hours"] = payload.cleanup_interval_hours

    if not updates:
        return _get_settings_or_500(db, hooks)

    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    assignments = ", ".join(f"{column} = ?" for column in updates.keys())
    values = list(updates.values())

    _ensure_settings_row(db)
    db.execute(
        f"UPDATE settings SET {assignments} WHERE id = 1",
        values,
    )
    db.commit()
    return _get_settings_or_500(db, hooks)
