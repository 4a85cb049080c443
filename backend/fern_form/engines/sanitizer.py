from __future__ import annotations

import re
import unicodedata
from html import unescape
from typing import Any, Mapping

from email_validator import EmailNotValidError, validate_email

from .hooks import Hook, HookBus

MIN_LONG_TEXT_WORDS = 20

_KEY_UNSAFE_RE = re.compile(r"[^a-z0-9_\-]")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"</?[a-zA-Z!/?][^>]*>?")
_LONE_LT_RE = re.compile(r"<(?![a-zA-Z!/?])")
_LINE_BREAKS_RE = re.compile(r"[\r\n\t ]+")
_PERCENT_OCTET_RE = re.compile(r"%[a-fA-F0-9]{2}")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_MULTI_SPACE_RE = re.compile(r" {2,}")
_EMAIL_UNSAFE_RE = re.compile(r"[^a-z0-9!#$%&'*+/=?^_`{|}~.@-]")
_WORD_RE = re.compile(r"[^\W\d_]+(?:['-][^\W\d_]+)*")
_SLUG_UNSAFE_RE = re.compile(r"[^a-z0-9]+")


def sanitize_key(key: Any) -> str:
    return _KEY_UNSAFE_RE.sub("", str(key).lower())


def humanize_key(key: Any) -> str:
    label = sanitize_text_field(str(key))
    return label[:1].upper() + label[1:]


def slugify(value: str) -> str:
    text = strip_all_tags(str(value or ""))
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return _SLUG_UNSAFE_RE.sub("-", text.lower()).strip("-")


def strip_all_tags(value: str) -> str:
    without_blocks = _SCRIPT_STYLE_RE.sub("", value)
    return _TAG_RE.sub("", without_blocks)


def is_email(value: str) -> bool:
    if "@" not in value:
        return False
    try:
        validate_email(value, check_deliverability=False, allow_smtputf8=False)
    except EmailNotValidError:
        return False
    return True


def sanitize_email(value: str) -> str:
    return _EMAIL_UNSAFE_RE.sub("", value.strip().lower())


def count_words(value: str) -> int:
    return len(_WORD_RE.findall(value))


def _sanitize_text(value: str, keep_newlines: bool) -> str:
    filtered = _CONTROL_CHARS_RE.sub("", value)
    if "<" in filtered:
        filtered = _LONE_LT_RE.sub("&lt;", filtered)
        filtered = strip_all_tags(filtered)

    if keep_newlines:
        filtered = "\n".join(re.sub(r"[\t ]+", " ", line).strip() for line in filtered.splitlines())
    else:
        filtered = _LINE_BREAKS_RE.sub(" ", filtered)

    found_octet = False
    while _PERCENT_OCTET_RE.search(filtered):
        filtered = _PERCENT_OCTET_RE.sub("", filtered)
        found_octet = True
    if found_octet:
        filtered = _MULTI_SPACE_RE.sub(" ", filtered)

    return filtered.strip()


def sanitize_text_field(value: str) -> str:
    return _sanitize_text(value, keep_newlines=False)


def sanitize_textarea_field(value: str) -> str:
    return _sanitize_text(value, keep_newlines=True)


def sanitize(
    data: Mapping[str, Any],
    form_name: str = "",
    *,
    preserve_key_casing: bool = False,
    hooks: HookBus | None = None,
    min_long_text_words: int = MIN_LONG_TEXT_WORDS,
) -> dict[str, Any]:
    """Sanitize the top level of a submission payload.

    Nested mappings and sequences are kept verbatim; only top-level keys and
    scalar values are rewritten. Unsupported value types pass through.
    """
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        sanitized_key = humanize_key(key) if preserve_key_casing else sanitize_key(key)

        if isinstance(value, bool):
            sanitized[sanitized_key] = value
            continue

        if isinstance(value, str):
            if is_email(value):
                sanitized[sanitized_key] = sanitize_email(value)
                continue

            text = unescape(value)
            text = text.replace('"', '\\"')

            is_text_area = False
            threshold = min_long_text_words
            if hooks is not None:
                is_text_area = bool(
                    hooks.apply_filters(Hook.IS_TEXT_AREA, False, form_name, key, sanitized_key, text)
                )
                threshold = int(hooks.apply_filters(Hook.MIN_LONG_TEXT_WORDS, threshold))

            if is_text_area or count_words(text) > threshold:
                sanitized[sanitized_key] = sanitize_textarea_field(text)
                continue

            sanitized[sanitized_key] = sanitize_text_field(text)
            continue

        sanitized[sanitized_key] = value

    return sanitized
