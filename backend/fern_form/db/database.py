import os
from pathlib import Path
import sqlite3

DB_FILENAME = "fern_form.db"
DB_PATH = Path(__file__).resolve().parents[2] / "data" / DB_FILENAME


def resolve_db_path(db_path: str | Path | None = None) -> Path:
    if db_path is not None:
        return Path(db_path)
    env_value = os.environ.get("FERN_DB_PATH", "").strip()
    if env_value:
        return Path(env_value)
    return DB_PATH


def get_db(db_path: str | Path | None = None) -> sqlite3.Connection:
    target = resolve_db_path(db_path)
    target.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(target, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
