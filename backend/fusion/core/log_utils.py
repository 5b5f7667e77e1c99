# backend/fusion/core/log_utils.py
"""Utilities for safe logging of request-supplied values.

Emails, URLs, key names and similar fields come straight from request bodies.
Before they reach a log line they are stripped of ANSI escapes, control
characters and bidirectional overrides, and newlines are made visible so a
value cannot forge extra log records.

This does NOT prevent format-string injection.
Always use: logger.info("%s", user_input) NOT logger.info(user_input)
"""

from __future__ import annotations

import re
from typing import Any

_ANSI_RE = re.compile(
    r"""
    \x1B
    (?:
        [@-Z\\-_]
      | \[ [0-?]* [ -/]* [@-~]
      | \] (?: [^\x07\x1B]* (?:\x07|\x1B\\))
    )
    """,
    re.VERBOSE,
)

# Control characters excluding \t, \n, \r (handled by the whitespace escaping)
_UNSAFE_CTRL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

_BIDI_RE = re.compile(r"[\u202A-\u202E\u2066-\u2069\u200E\u200F]")

_INVISIBLE_RE = re.compile(r"[\u200B-\u200D\u2060\u00AD]")

_TRUNCATED_SUFFIX = "...[truncated]"


def sanitize_for_log(value: Any, max_length: int | None = 1000) -> str:
    """Sanitize a user-controlled value for line-oriented logging.

    Examples:
        >>> sanitize_for_log("Hello\\nWorld")
        'Hello\\\\nWorld'
        >>> sanitize_for_log("User: \\x1b[31mRED\\x1b[0m")
        'User: RED'
        >>> sanitize_for_log(None)
        '<None>'
    """
    if value is None:
        return "<None>"

    try:
        text = str(value)
    except Exception:
        return f"<Error converting to string: {type(value).__name__}>"

    text = _ANSI_RE.sub("", text)
    text = (
        text.replace("\\", "\\\\")
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )
    text = _UNSAFE_CTRL_RE.sub("", text)
    text = _BIDI_RE.sub("", text)
    text = _INVISIBLE_RE.sub("", text)

    if max_length is not None and len(text) > max_length:
        keep = max(0, max_length - len(_TRUNCATED_SUFFIX))
        text = text[:keep] + _TRUNCATED_SUFFIX

    return text


def mask_secret(secret: str | None, visible: int = 4) -> str:
    """Render a secret as ``****abcd`` so only its tail is ever logged."""
    if not secret:
        return "<empty>"
    if len(secret) <= visible:
        return "*" * len(secret)
    return "****" + secret[-visible:]
