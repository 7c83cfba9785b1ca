# hearing/core/types.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Shared type helpers
------------------------------------
Central place for small shared type definitions used across the core:

- TierLabel       : which model tier produced a text ("tier1"|"tier2")
- ModelCallResult : result of a single model call through the tier chain
- TurnDecision    : what the completion policy decided for a turn
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

# Which tier produced the text. Tier3 (templates) never goes through the
# model chain; the dialogue orchestrator applies it directly.
TierLabel = Literal["tier1", "tier2"]


@dataclass
class ModelCallResult:
    """
    Result of a single model call (Tier1 / Tier2).

    Attributes
    ----------
    text:
        Full text returned by the model, stripped.
    used_tier:
        "tier1" | "tier2"
    raw:
        Backend metadata (model name, provider).
    """
    text: str
    used_tier: TierLabel
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TurnDecision:
    """
    Completion policy output for one turn.

    Attributes
    ----------
    complete:
        True if the session should end now.
    urgent_slot:
        Slot the next question should target (only when not completing).
    deferred:
        True when urgent_slot postponed a completion the policy had
        already reached.
    """
    complete: bool
    urgent_slot: Optional[str] = None
    deferred: bool = False
