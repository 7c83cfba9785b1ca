# hearing/models/session_model.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Session state model
------------------------------------
One in-progress hearing conversation: identity, status, slot values and the
ordered question/answer transcript.

Session objects are frozen. Every "mutation" returns a new Session, so the
dialogue orchestrator always holds exactly one before-state and one
after-state per turn, and the store never sees a half-edited object.

The JSON produced by `model_dump_json()` is the persisted record format and
round-trips through `Session.model_validate_json()`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hearing.core.slots import (
    ALL_SLOTS,
    QUALITY_SLOTS,
    empty_slots,
    is_filled,
    merge_slot_updates,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle of a session. Only ever moves ACTIVE -> COMPLETED."""

    ACTIVE = "active"
    COMPLETED = "completed"


class QARecord(BaseModel):
    """One question/answer exchange in the transcript."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    timestamp: datetime = Field(default_factory=utc_now)


class SessionSeed(BaseModel):
    """
    Optional data supplied when a session is created.

    Attributes
    ----------
    session_id:
        Caller-chosen id. A random one is generated when omitted.
    platform:
        Client platform label ("web", "ios", ...), kept for reporting.
    metadata:
        Free-form context such as CRM hints about the customer.
    slots:
        Slot values already known before the conversation starts
        (e.g. the customer picked from a CRM search). Unknown keys are
        rejected.
    """

    session_id: Optional[str] = None
    platform: str = "web"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    slots: Dict[str, str] = Field(default_factory=dict)

    @field_validator("slots")
    @classmethod
    def _known_slots_only(cls, value: Dict[str, str]) -> Dict[str, str]:
        unknown = [k for k in value if k not in ALL_SLOTS]
        if unknown:
            raise ValueError(f"unknown slot keys: {', '.join(sorted(unknown))}")
        return value


class Session(BaseModel):
    """
    Per-session state.

    Attributes
    ----------
    id:
        Opaque session id, immutable.
    owner_id:
        Id of the user who started the session, immutable.
    status:
        ACTIVE until the session is completed (once).
    started_at / ended_at:
        UTC timestamps; ended_at stays None until completion.
    slots:
        Exactly the predeclared slot names -> value ("" = unfilled).
    history:
        Append-only transcript, one record per accepted turn.
    current_question:
        The question the session is waiting on. None once completed.
    summary:
        Written once, at completion.
    follow_up_slot:
        Slot whose urgent follow-up postponed completion; the current
        question asks about it. Bounds the postponement to one turn.
    pending_turn_at:
        Set while a turn is being processed (duplicate-submission guard).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: Optional[datetime] = None
    slots: Dict[str, str] = Field(default_factory=empty_slots)
    history: List[QARecord] = Field(default_factory=list)
    current_question: Optional[str] = None
    summary: Optional[str] = None
    follow_up_slot: Optional[str] = None
    pending_turn_at: Optional[datetime] = None
    platform: str = "web"
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("slots", mode="before")
    @classmethod
    def _exact_slot_set(cls, value: Any) -> Dict[str, str]:
        if not isinstance(value, Mapping):
            raise ValueError("slots must be a mapping")
        unknown = [k for k in value if k not in ALL_SLOTS]
        if unknown:
            raise ValueError(f"unknown slot keys: {', '.join(sorted(unknown))}")
        slots = empty_slots()
        for key, raw in value.items():
            slots[key] = "" if raw is None else str(raw)
        return slots

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(
        cls,
        owner_id: str,
        seed: Optional[SessionSeed] = None,
        *,
        first_question: Optional[str] = None,
    ) -> "Session":
        """Create a fresh ACTIVE session with empty history."""
        seed = seed or SessionSeed()
        slots = merge_slot_updates(empty_slots(), seed.slots)
        return cls(
            id=seed.session_id or uuid.uuid4().hex,
            owner_id=owner_id,
            slots=slots,
            current_question=first_question,
            platform=seed.platform,
            metadata=dict(seed.metadata),
        )

    # ------------------------------------------------------------------
    # Pure accessors
    # ------------------------------------------------------------------

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def turn_count(self) -> int:
        return len(self.history)

    def is_slot_filled(self, name: str) -> bool:
        if name not in ALL_SLOTS:
            raise KeyError(name)
        return is_filled(self.slots.get(name))

    def unfilled_slots(self) -> List[str]:
        """Unfilled slot names, required slots first."""
        return [name for name in ALL_SLOTS if not is_filled(self.slots.get(name))]

    def filled_quality_slots(self) -> List[str]:
        return [name for name in QUALITY_SLOTS if is_filled(self.slots.get(name))]

    def last_answer(self) -> str:
        return self.history[-1].answer if self.history else ""

    def transcript(self) -> List[Dict[str, str]]:
        """History as plain {"question", "answer"} dicts, in order."""
        return [{"question": qa.question, "answer": qa.answer} for qa in self.history]

    def lease_active(self, now: datetime, lease_s: float) -> bool:
        """True while another turn holds a non-expired processing lease."""
        if self.pending_turn_at is None:
            return False
        return (now - self.pending_turn_at).total_seconds() < lease_s

    # ------------------------------------------------------------------
    # Transitions (each returns a new Session)
    # ------------------------------------------------------------------

    def _ensure_active(self) -> None:
        if self.is_completed:
            raise ValueError(f"session {self.id} is already completed")

    def with_slots(self, update: Mapping[str, str]) -> "Session":
        self._ensure_active()
        return self.model_copy(update={"slots": merge_slot_updates(self.slots, update)})

    def with_answer(self, question: str, answer: str, at: Optional[datetime] = None) -> "Session":
        self._ensure_active()
        record = QARecord(question=question, answer=answer, timestamp=at or utc_now())
        return self.model_copy(update={"history": [*self.history, record]})

    def with_pending_turn(self, at: Optional[datetime]) -> "Session":
        return self.model_copy(update={"pending_turn_at": at})

    def with_question(self, question: str, follow_up_slot: Optional[str] = None) -> "Session":
        self._ensure_active()
        return self.model_copy(
            update={
                "current_question": question,
                "follow_up_slot": follow_up_slot,
                "pending_turn_at": None,
            }
        )

    def completed(self, summary: str, at: Optional[datetime] = None) -> "Session":
        self._ensure_active()
        return self.model_copy(
            update={
                "status": SessionStatus.COMPLETED,
                "ended_at": at or utc_now(),
                "summary": summary,
                "current_question": None,
                "follow_up_slot": None,
                "pending_turn_at": None,
            }
        )
