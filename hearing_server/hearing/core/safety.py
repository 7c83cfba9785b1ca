# hearing/core/safety.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Safety helpers
-------------------------------
Central place for:
- Cleaning / normalizing answer text before it reaches the model or history.
- Clamping generated text (acknowledgement, question, summary) to a length.

These functions are *pure* (no network, no I/O) so they are easy to test.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SanitizedTextResult:
    """
    Result of sanitize_user_text().

    Attributes
    ----------
    original:
        Original raw text from the client (None -> "").
    sanitized:
        Cleaned version stored in history and sent to the model.
    truncated:
        True if we had to cut the text at max_chars.
    too_short:
        True if sanitized text is empty.
    """
    original: str
    sanitized: str
    truncated: bool
    too_short: bool


# ---------------------------------------------------------------------------
# User text sanitization
# ---------------------------------------------------------------------------

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WRAPPING_QUOTES = "\"'“”「」『』"


def sanitize_user_text(raw_text: Optional[str], max_chars: int) -> SanitizedTextResult:
    """
    Clean up an answer before it touches the model or the transcript.

    Steps:
    - Convert None -> "".
    - Remove control characters.
    - Collapse whitespace.
    - Truncate to max_chars.
    """
    original = raw_text if isinstance(raw_text, str) else ""

    cleaned = _CONTROL_CHARS_RE.sub("", original)
    cleaned = " ".join(cleaned.split())

    truncated = False
    if max_chars > 0 and len(cleaned) > max_chars:
        cleaned = cleaned[:max_chars]
        truncated = True

    sanitized = cleaned.strip()
    too_short = len(sanitized) == 0

    if truncated:
        logger.debug(
            "sanitize_user_text: truncated user text from %d to %d chars",
            len(original),
            len(sanitized),
        )

    return SanitizedTextResult(
        original=original,
        sanitized=sanitized,
        truncated=truncated,
        too_short=too_short,
    )


# ---------------------------------------------------------------------------
# Generated text clamping
# ---------------------------------------------------------------------------

def strip_wrapping_quotes(text: str) -> str:
    """Models like to answer `"Got it!"` with the quotes. Drop them."""
    text = text.strip()
    while len(text) >= 2 and text[0] in _WRAPPING_QUOTES and text[-1] in _WRAPPING_QUOTES:
        text = text[1:-1].strip()
    return text


def clamp_reply_text(reply_text: str, limit: int) -> str:
    """
    Ensure a generated text is not longer than `limit` characters.

    Behavior:
    - If limit <= 0: returns an empty string.
    - If text length <= limit: returns as-is.
    - If too long: cuts to (limit - 3) and appends "...".
    """
    text = reply_text if isinstance(reply_text, str) else str(reply_text or "")

    if limit <= 0:
        logger.warning("clamp_reply_text: limit <= 0, returning empty string.")
        return ""

    if len(text) <= limit:
        return text

    if limit > 3:
        clamped = text[: limit - 3].rstrip() + "..."
    else:
        clamped = text[:limit]

    logger.debug(
        "clamp_reply_text: truncated text from %d to %d chars (limit=%d)",
        len(text),
        len(clamped),
        limit,
    )
    return clamped
