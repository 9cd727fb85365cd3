"""JSON helpers shared by the note record types.

Notes written by other git-appraise clients are compact JSON with HTML
characters escaped; hashes are taken over exactly those bytes, so writing
has to reproduce the format character for character.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, TypeVar

from appraise_core.errors import ParseError

T = TypeVar("T")

_HTML_ESCAPES = {
    "&": "\\u0026",
    "<": "\\u003c",
    ">": "\\u003e",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def marshal(obj: Any) -> str:
    """Serialize obj as compact JSON with HTML-sensitive characters escaped."""
    text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    for raw, escaped in _HTML_ESCAPES.items():
        text = text.replace(raw, escaped)
    return text


def pretty(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def load_object(note: str) -> dict:
    try:
        data = json.loads(note)
    except ValueError as e:
        raise ParseError(f"Invalid note: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def get_str(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseError(f"Field {key!r} must be a string")
    return value


def get_int(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ParseError(f"Field {key!r} must be a non-negative integer")
    return value


def get_optional_bool(data: dict, key: str) -> bool | None:
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise ParseError(f"Field {key!r} must be a boolean")
    return value


def get_str_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ParseError(f"Field {key!r} must be a list of strings")
    return list(value)


def latest_by_timestamp(records: Iterable[T]) -> T | None:
    """Return the record with the greatest numeric timestamp.

    Raises ParseError if any timestamp is not a decimal integer. Ties go to
    the record seen first.
    """
    latest = None
    latest_time = -1
    for record in records:
        try:
            time = int(record.timestamp)
        except ValueError as e:
            raise ParseError(f"Invalid timestamp {record.timestamp!r}") from e
        if time > latest_time:
            latest, latest_time = record, time
    return latest
