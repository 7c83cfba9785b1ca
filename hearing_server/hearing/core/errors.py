# hearing/core/errors.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Error types
----------------------------
Only SessionNotFound is meant to reach callers. Everything else is absorbed
by the dialogue orchestrator or the session store and turned into a
degraded-but-correct result (fallback text, in-process store, dropped keys).
"""

from __future__ import annotations

from typing import Dict, List


class HearingError(Exception):
    """Base class for all hearing server errors."""


class SessionNotFound(HearingError):
    """Raised when a caller references an unknown or expired session id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class GenerationUnavailable(HearingError):
    """Raised when the text generation backend failed, timed out or returned garbage."""


class StoreUnavailable(HearingError):
    """Raised when the durable session store cannot be reached."""


class InvalidSlotSchema(HearingError):
    """
    Raised when a slot update contains keys outside the slot schema.

    The valid part of the update is kept on the exception so callers can
    log the offending keys and carry on with `accepted`.
    """

    def __init__(self, unknown_keys: List[str], accepted: Dict[str, str]) -> None:
        super().__init__(f"Unknown slot keys: {', '.join(sorted(unknown_keys))}")
        self.unknown_keys = unknown_keys
        self.accepted = accepted
