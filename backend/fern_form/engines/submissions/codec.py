import base64
import binascii
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class ContentEncodingError(ValueError):
    pass


def encode_content(data: dict[str, Any]) -> str:
    try:
        return json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ContentEncodingError(f"JSON encoding error: {exc}. Data: {data!r}") from exc


def _as_mapping(decoded: Any) -> dict[str, Any] | None:
    return decoded if isinstance(decoded, dict) else None


def decode_content(content: str | bytes | None) -> dict[str, Any]:
    """Decode a stored payload.

    Plain JSON is tried first; base64-wrapped JSON only when that fails.
    Anything undecodable yields an empty mapping.
    """
    if not content:
        return {}
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content

    try:
        decoded = _as_mapping(json.loads(text))
        if decoded is not None:
            return decoded
    except json.JSONDecodeError:
        pass

    try:
        unwrapped = base64.b64decode(text.strip(), validate=True).decode("utf-8")
        decoded = _as_mapping(json.loads(unwrapped))
        if decoded is not None:
            return decoded
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError):
        pass

    logger.warning("Stored submission content could not be decoded")
    return {}
