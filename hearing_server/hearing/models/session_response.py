# hearing/models/session_response.py
# -*- coding: utf-8 -*-
"""
Hearing Server — response models
--------------------------------
Plain-data results of the core operations. The orchestrator returns these
directly, and the HTTP layer serializes them as they are.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from hearing.models.session_model import QARecord, SessionStatus


class CreateSessionResponse(BaseModel):
    session_id: str
    owner_id: str
    initial_question: str
    status: SessionStatus
    created_at: datetime


class TurnResult(BaseModel):
    """
    Outcome of one submitted answer.

    Fields
    ------
    acknowledgement:
        Short reply to the answer ("Understood.").
    next_question:
        The next question, or None when the session completed.
    is_complete:
        True once the session is completed.
    summary:
        Report summary, only when is_complete.
    slots:
        Slot values after this turn.
    questions_count:
        Number of answered questions so far.
    """

    acknowledgement: str
    next_question: Optional[str] = None
    is_complete: bool = False
    summary: Optional[str] = None
    slots: Dict[str, str] = Field(default_factory=dict)
    questions_count: int = 0


class EndSessionResponse(BaseModel):
    status: SessionStatus
    summary: str
    slots: Dict[str, str]
    history: List[QARecord]
