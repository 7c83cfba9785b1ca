# hearing/models/session_request.py
# -*- coding: utf-8 -*-
"""
Hearing Server — request models
-------------------------------
Request payloads for the /sessions endpoints.

Authentication is not handled here; owner_id is taken as given from the
caller (the gateway in front of this service owns identity).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, constr, field_validator

from hearing.core.slots import ALL_SLOTS
from hearing.models.session_model import SessionSeed


class CreateSessionRequest(BaseModel):
    """
    Body of POST /sessions.

    Fields
    ------
    owner_id:
        Id of the field worker starting the hearing.
    session_id:
        Optional caller-chosen session id (a random one is generated otherwise).
    platform:
        Client platform label, e.g. "web" or "ios".
    metadata:
        Free-form context (CRM hints, client build, ...).
    slots:
        Slot values already known up front, e.g. a customer picked from the CRM.
    """

    owner_id: constr(min_length=1, strip_whitespace=True) = Field(
        ...,
        description="Id of the user starting the session.",
        examples=["user-42"],
    )
    session_id: Optional[constr(min_length=1, strip_whitespace=True)] = Field(
        default=None,
        description="Optional caller-chosen session id.",
    )
    platform: str = Field(default="web", examples=["web"])
    metadata: Dict[str, Any] = Field(default_factory=dict)
    slots: Dict[str, str] = Field(
        default_factory=dict,
        description="Known slot values, keyed by slot name.",
        examples=[{"customer": "Acme Corp"}],
    )

    @field_validator("slots")
    @classmethod
    def _known_slots_only(cls, value: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(k for k in value if k not in ALL_SLOTS)
        if unknown:
            raise ValueError(f"unknown slot keys: {', '.join(unknown)}")
        return value

    def to_seed(self) -> SessionSeed:
        return SessionSeed(
            session_id=self.session_id,
            platform=self.platform,
            metadata=self.metadata,
            slots=self.slots,
        )


class AnswerRequest(BaseModel):
    """Body of POST /sessions/{session_id}/answers."""

    answer: constr(min_length=1, strip_whitespace=True) = Field(
        ...,
        description="The user's answer to the current question, as plain text.",
        examples=["Visited Acme, discussed Project X, next step is to send a quote."],
    )
