"""Small helpers for the minimal JSON handling the chat protocol needs."""

from __future__ import annotations

import time

_ESCAPES = str.maketrans({
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
})


def escape_json(text: str) -> str:
    """Escape quotes, backslashes, newlines, carriage returns and tabs."""
    return text.translate(_ESCAPES)


def current_timestamp() -> str:
    """Return the local wall-clock time as ``HH:MM:SS``."""
    return time.strftime("%H:%M:%S", time.localtime())


def get_json_value(body: str, key: str) -> str:
    """Extract a string value for ``key`` from a flat JSON object.

    This is a lenient scan, not a parser: it finds the quoted key, the
    next colon, and returns the text between the following pair of
    double quotes. An empty string is returned when any step fails.
    """
    pattern = f'"{key}"'
    pos = body.find(pattern)
    if pos < 0:
        return ""
    colon = body.find(":", pos + len(pattern))
    if colon < 0:
        return ""
    start = body.find('"', colon)
    if start < 0:
        return ""
    start += 1
    end = body.find('"', start)
    if end < 0:
        return ""
    return body[start:end]