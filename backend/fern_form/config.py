import logging
import os
import sqlite3
from dataclasses import asdict, dataclass, fields
from typing import Any

from .engines.hooks import Hook, HookBus

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90
DEFAULT_MIN_LONG_TEXT_WORDS = 20
DEFAULT_CLEANUP_BATCH_SIZE = 100
DEFAULT_CLEANUP_INTERVAL_HOURS = 24

_ENV_PREFIX = "FERN_"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    retention_days: int | None = DEFAULT_RETENTION_DAYS
    min_long_text_words: int = DEFAULT_MIN_LONG_TEXT_WORDS
    preserve_key_casing: bool = False
    cleanup_batch_size: int = DEFAULT_CLEANUP_BATCH_SIZE
    cleanup_interval_hours: int = DEFAULT_CLEANUP_INTERVAL_HOURS
    clear_on_deactivate: bool = False

    @property
    def retention_enabled(self) -> bool:
        return self.retention_days is not None and self.retention_days >= 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "Config":
        known = {field.name for field in fields(cls)}
        merged = asdict(cls())
        merged.update({key: value for key, value in values.items() if key in known})

        retention = merged["retention_days"]
        merged["retention_days"] = None if retention is None else int(retention)
        merged["min_long_text_words"] = max(0, int(merged["min_long_text_words"]))
        merged["preserve_key_casing"] = bool(merged["preserve_key_casing"])
        merged["cleanup_batch_size"] = max(1, int(merged["cleanup_batch_size"]))
        merged["cleanup_interval_hours"] = max(1, int(merged["cleanup_interval_hours"]))
        merged["clear_on_deactivate"] = bool(merged["clear_on_deactivate"])
        return cls(**merged)


def _parse_int(name: str, raw: str, allow_none: bool = False) -> int | None:
    value = raw.strip()
    if allow_none and value.lower() in {"", "none", "null"}:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid %s%s value: %s", _ENV_PREFIX, name.upper(), raw)
        raise


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning("Invalid %s%s value: %s", _ENV_PREFIX, name.upper(), raw)
    raise ValueError(raw)


def _read_env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field in fields(Config):
        raw = os.environ.get(f"{_ENV_PREFIX}{field.name.upper()}")
        if raw is None:
            continue
        try:
            if field.name in {"preserve_key_casing", "clear_on_deactivate"}:
                overrides[field.name] = _parse_bool(field.name, raw)
            else:
                overrides[field.name] = _parse_int(field.name, raw, allow_none=field.name == "retention_days")
        except ValueError:
            continue
    return overrides


def _read_settings_row(conn: sqlite3.Connection) -> dict[str, Any]:
    try:
        row = conn.execute(
            """
            SELECT retention_days, min_long_text_words, preserve_key_casing,
                   cleanup_batch_size, cleanup_interval_hours
            FROM settings
            WHERE id = 1
            """
        ).fetchone()
    except sqlite3.Error:
        logger.exception("Failed to read form settings")
        return {}
    if row is None:
        return {}

    values = dict(row)
    result: dict[str, Any] = {"retention_days": values.get("retention_days")}
    for key in ("min_long_text_words", "preserve_key_casing", "cleanup_batch_size", "cleanup_interval_hours"):
        if values.get(key) is not None:
            result[key] = values[key]
    return result


def load_config(conn: sqlite3.Connection | None = None, hooks: HookBus | None = None) -> Config:
    """Resolve the effective configuration.

    Precedence, lowest first: built-in defaults, the ``settings`` row, the
    ``FERN_*`` environment variables, and finally the ``config`` filter.
    """
    values = Config().to_dict()
    if conn is not None:
        values.update(_read_settings_row(conn))
    values.update(_read_env_overrides())

    if hooks is not None:
        filtered = hooks.apply_filters(Hook.CONFIG, dict(values))
        if isinstance(filtered, dict):
            values = filtered
        else:
            logger.warning("Ignoring config filter result of type %s", type(filtered).__name__)

    return Config.from_dict(values)
