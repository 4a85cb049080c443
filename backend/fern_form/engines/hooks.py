"""In-process actions and filters around the submission lifecycle.

Actions notify observers and return nothing. Filters thread a value through
every registered handler and hand the final value back to the caller. Both run
handlers in registration order, and an exception raised by a handler is never
caught here.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

HOOK_PREFIX = "fern:form:"


class Hook(str, Enum):
    # store
    SUBMISSION_SHOULD_ABORT = "submission_should_abort"
    SUBMISSION_DATA = "submission_data"
    SUBMISSION_TITLE = "submission_title"
    SUBMISSION_STORED = "submission_stored"
    SUBMISSION_ERROR = "submission_error"
    # update
    UPDATE_SUBMISSION_SHOULD_ABORT = "update_submission_should_abort"
    UPDATE_SUBMISSION_DATA = "update_submission_data"
    UPDATE_SUBMISSION_TITLE = "update_submission_title"
    SUBMISSION_UPDATED = "submission_updated"
    UPDATE_SUBMISSION_ERROR = "update_submission_error"
    # delete
    BEFORE_DELETE = "before_delete"
    DELETE_SUBMISSION_SHOULD_ABORT = "delete_submission_should_abort"
    AFTER_DELETE = "after_delete"
    # sanitizer
    IS_TEXT_AREA = "is_text_area"
    MIN_LONG_TEXT_WORDS = "min_long_text_words"
    # config and rendering
    CONFIG = "config"
    SUBMISSION_ITEM_KEY = "submission_item_key"
    SUBMISSION_ITEM_VALUE = "submission_item_value"

    @property
    def qualified_name(self) -> str:
        return f"{HOOK_PREFIX}{self.value}"


ACTION_HOOKS = frozenset(
    {
        Hook.SUBMISSION_STORED,
        Hook.SUBMISSION_ERROR,
        Hook.SUBMISSION_UPDATED,
        Hook.UPDATE_SUBMISSION_ERROR,
        Hook.BEFORE_DELETE,
        Hook.AFTER_DELETE,
    }
)

Handler = Callable[..., Any]


def _coerce_hook(hook: Hook | str) -> Hook:
    if isinstance(hook, Hook):
        return hook
    name = str(hook)
    if name.startswith(HOOK_PREFIX):
        name = name[len(HOOK_PREFIX):]
    try:
        return Hook(name)
    except ValueError:
        raise ValueError(f"Unknown hook: {hook}") from None


class HookBus:
    def __init__(self) -> None:
        self._actions: dict[Hook, list[Handler]] = defaultdict(list)
        self._filters: dict[Hook, list[Handler]] = defaultdict(list)

    def add_action(self, hook: Hook | str, callback: Handler) -> Handler:
        resolved = _coerce_hook(hook)
        if resolved not in ACTION_HOOKS:
            raise ValueError(f"{resolved.qualified_name} is a filter, not an action")
        self._actions[resolved].append(callback)
        return callback

    def add_filter(self, hook: Hook | str, callback: Handler) -> Handler:
        resolved = _coerce_hook(hook)
        if resolved in ACTION_HOOKS:
            raise ValueError(f"{resolved.qualified_name} is an action, not a filter")
        self._filters[resolved].append(callback)
        return callback

    def remove_action(self, hook: Hook | str, callback: Handler) -> bool:
        return _remove(self._actions[_coerce_hook(hook)], callback)

    def remove_filter(self, hook: Hook | str, callback: Handler) -> bool:
        return _remove(self._filters[_coerce_hook(hook)], callback)

    def has_handlers(self, hook: Hook | str) -> bool:
        resolved = _coerce_hook(hook)
        return bool(self._actions.get(resolved) or self._filters.get(resolved))

    def do_action(self, hook: Hook | str, *args: Any) -> None:
        resolved = _coerce_hook(hook)
        handlers = list(self._actions.get(resolved, ()))
        if handlers:
            logger.debug("Dispatching %s to %d observer(s)", resolved.qualified_name, len(handlers))
        for callback in handlers:
            callback(*args)

    def apply_filters(self, hook: Hook | str, value: Any, *args: Any) -> Any:
        resolved = _coerce_hook(hook)
        for callback in list(self._filters.get(resolved, ())):
            value = callback(value, *args)
        return value

    def should_abort(self, hook: Hook | str, *args: Any) -> bool:
        return bool(self.apply_filters(hook, False, *args))


def _remove(handlers: list[Handler], callback: Handler) -> bool:
    try:
        handlers.remove(callback)
    except ValueError:
        return False
    return True
