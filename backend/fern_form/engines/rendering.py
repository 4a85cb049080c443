from typing import Any
from urllib.parse import urlparse

from .hooks import Hook, HookBus

LONG_TEXT_CHARS = 100


def _is_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return bool(parsed.scheme and parsed.netloc) and " " not in value.strip()


def _children(value: Any) -> list[tuple[str, Any]]:
    if isinstance(value, dict):
        return [(str(key), item) for key, item in value.items()]
    return [(str(index), item) for index, item in enumerate(value)]


def render_fields(
    data: dict[str, Any],
    hooks: HookBus | None = None,
    depth: int = 0,
    parent_key: str = "",
) -> list[dict[str, Any]]:
    """Flatten a submission payload into display rows, depth first.

    Nested mappings and lists produce a ``group`` row followed by their
    children, whose keys are dotted with the parent key.
    """
    bus = hooks or HookBus()
    rows: list[dict[str, Any]] = []

    for key, value in _children(data):
        full_key = f"{parent_key}.{key}" if parent_key else key
        label = bus.apply_filters(Hook.SUBMISSION_ITEM_KEY, key, full_key)
        row: dict[str, Any] = {"key": label, "full_key": full_key, "depth": depth}

        if isinstance(value, (dict, list)):
            row.update(kind="group", value=None)
            rows.append(row)
            rows.extend(render_fields(value, bus, depth + 1, full_key))
            continue

        if isinstance(value, bool):
            display = bus.apply_filters(Hook.SUBMISSION_ITEM_VALUE, "Yes" if value else "No", label, full_key)
            row.update(kind="boolean", value=display)
        elif value is None:
            row.update(kind="null", value="Null")
        elif isinstance(value, str) and _is_url(value):
            row.update(kind="url", value=value.strip())
        elif isinstance(value, str) and len(value) > LONG_TEXT_CHARS:
            display = bus.apply_filters(Hook.SUBMISSION_ITEM_VALUE, value, label, full_key)
            row.update(kind="long_text", value=display)
        else:
            display = bus.apply_filters(Hook.SUBMISSION_ITEM_VALUE, value, label, full_key)
            row.update(kind="text", value=display if isinstance(display, str) else str(display))
        rows.append(row)

    return rows
