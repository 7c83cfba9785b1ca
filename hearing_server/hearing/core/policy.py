# hearing/core/policy.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Completion policy
----------------------------------
Decides, after each turn, whether a hearing session has gathered enough to
end, and whether the latest answer calls for a targeted follow-up question.

Three signals are blended:
    - required coverage : every required slot is filled (0 or 1)
    - quality coverage  : filled quality slots / all quality slots
    - answer depth      : recent answers are long and detailed (0 or 0.5)

    score = required * 0.4 + quality * 0.4 + depth * 0.2

and a staged gate is applied on top (turn floor, early/late thresholds,
hard cap). The hard cap always ends the session, whatever the slots say.

Everything here is pure: no network, no store access.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from hearing.core.config import Settings
from hearing.core.slots import ALL_SLOTS, QUALITY_SLOTS, REQUIRED_SLOTS, is_filled
from hearing.core.types import TurnDecision
from hearing.models.session_model import Session

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------------
# Follow-up trigger catalogs
# Matched against the lower-cased latest answer (see keyword_pattern).
# English plus the Japanese phrases field staff actually use in reports.
# -------------------------------------------------------------------------

COMPETITOR_KEYWORDS = [
    "competitor",
    "competition",
    "competing",
    "rival",
    "other vendor",
    "another vendor",
    "競合",
    "他社",
]

BUDGET_KEYWORDS = [
    "budget",
    "price",
    "pricing",
    "cost",
    "amount",
    "dollar",
    "$",
    "yen",
    "予算",
    "金額",
    "円",
]

POSITIVE_KEYWORDS = [
    "positive",
    "promising",
    "good feeling",
    "went well",
    "very interested",
    "enthusiastic",
    "keen",
    "前向き",
    "好感触",
    "良い",
]

ISSUE_KEYWORDS = [
    "problem",
    "issue",
    "concern",
    "risk",
    "challenge",
    "課題",
    "問題",
    "懸念",
]


def keyword_pattern(keywords: Tuple[str, ...]) -> "re.Pattern[str]":
    """
    One regex for a keyword list.

    Alphanumeric ASCII keywords match whole words (plural "s"/"es" allowed),
    so "cost" skips "costume". Anything else ("$", Japanese) is a plain
    substring.
    """
    parts = []
    for kw in keywords:
        escaped = re.escape(kw)
        if kw.isascii() and kw[:1].isalnum() and kw[-1:].isalnum():
            parts.append(rf"\b{escaped}(?:s|es)?\b")
        else:
            parts.append(escaped)
    return re.compile("|".join(parts))


@dataclass(frozen=True)
class FollowUpRule:
    """If any keyword appears in the latest answer and `slot` is empty, follow up on `slot`."""

    slot: str
    keywords: Tuple[str, ...]
    pattern: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern", keyword_pattern(self.keywords))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


# Ordered: the first matching rule wins.
FOLLOW_UP_RULES: List[FollowUpRule] = [
    FollowUpRule("competitor_info", tuple(COMPETITOR_KEYWORDS)),
    FollowUpRule("budget", tuple(BUDGET_KEYWORDS)),
    FollowUpRule("closing_possibility", tuple(POSITIVE_KEYWORDS)),
    FollowUpRule("issues", tuple(ISSUE_KEYWORDS)),
]


# -------------------------------------------------------------------------
# Parameters / score
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyParams:
    min_turns: int = 3
    hard_cap_turns: int = len(ALL_SLOTS) + 1
    early_turns: int = 5
    early_score: float = 0.7
    early_quality_slots: int = 4
    late_turns: int = 8
    late_score: float = 0.5
    weight_required: float = 0.4
    weight_quality: float = 0.4
    weight_depth: float = 0.2
    depth_window: int = 3
    depth_min_chars: int = 50
    depth_value: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyParams":
        return cls(
            min_turns=settings.policy_min_turns,
            hard_cap_turns=settings.policy_hard_cap_turns,
            early_turns=settings.policy_early_turns,
            early_score=settings.policy_early_score,
            early_quality_slots=settings.policy_early_quality_slots,
            late_turns=settings.policy_late_turns,
            late_score=settings.policy_late_score,
            weight_required=settings.policy_weight_required,
            weight_quality=settings.policy_weight_quality,
            weight_depth=settings.policy_weight_depth,
            depth_window=settings.policy_depth_window,
            depth_min_chars=settings.policy_depth_min_chars,
            depth_value=settings.policy_depth_value,
        )


@dataclass(frozen=True)
class InformationScore:
    required: float
    quality: float
    depth: float
    total: float
    filled_quality: int


class CompletionPolicy:
    """Turn-level termination heuristic. See module docstring."""

    def __init__(
        self,
        params: Optional[PolicyParams] = None,
        rules: Optional[List[FollowUpRule]] = None,
    ) -> None:
        self.params = params or PolicyParams()
        self.rules = rules if rules is not None else FOLLOW_UP_RULES

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def has_required(self, session: Session) -> bool:
        return all(is_filled(session.slots.get(name)) for name in REQUIRED_SLOTS)

    def information_score(self, session: Session) -> InformationScore:
        p = self.params
        required = 1.0 if self.has_required(session) else 0.0
        filled_quality = len(session.filled_quality_slots())
        quality = filled_quality / len(QUALITY_SLOTS)

        depth = 0.0
        recent = session.history[-p.depth_window:] if p.depth_window > 0 else []
        if recent:
            avg_len = sum(len(qa.answer) for qa in recent) / len(recent)
            if avg_len > p.depth_min_chars:
                depth = p.depth_value

        total = (
            required * p.weight_required
            + quality * p.weight_quality
            + depth * p.weight_depth
        )
        return InformationScore(
            required=required,
            quality=quality,
            depth=depth,
            total=total,
            filled_quality=filled_quality,
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def should_complete(self, session: Session) -> bool:
        """
        Staged gate:
        - below min_turns          -> never
        - required slots missing   -> only at the hard cap
        - >= early_turns           -> score >= early_score or enough quality slots
        - >= late_turns            -> score >= late_score
        - >= hard_cap_turns        -> always
        """
        p = self.params
        turns = session.turn_count

        if turns >= p.hard_cap_turns:
            return True
        if turns < p.min_turns:
            return False
        if not self.has_required(session):
            return False

        score = self.information_score(session)
        if turns >= p.early_turns:
            if score.total >= p.early_score:
                return True
            if score.filled_quality >= p.early_quality_slots:
                return True
        if turns >= p.late_turns and score.total >= p.late_score:
            return True
        return False

    def urgent_slot(self, session: Session) -> Optional[str]:
        """First slot a trigger in the latest answer points at, if still empty."""
        text = session.last_answer().lower()
        if not text:
            return None
        for rule in self.rules:
            if rule.matches(text) and not is_filled(session.slots.get(rule.slot)):
                return rule.slot
        return None

    def has_urgent_follow_up(self, session: Session) -> bool:
        return self.urgent_slot(session) is not None

    def decide(self, session: Session) -> TurnDecision:
        """
        Combine should_complete and the follow-up check.

        An urgent follow-up postpones completion by one turn only: not when
        the question just answered was itself a deferring follow-up, and never
        at the hard cap.
        """
        complete = self.should_complete(session)
        urgent = self.urgent_slot(session)

        if complete and urgent is not None:
            at_cap = session.turn_count >= self.params.hard_cap_turns
            if at_cap or session.follow_up_slot is not None:
                logger.info(
                    "[Policy] Session %s: completing despite open follow-up on %s "
                    "(turns=%d, previous follow-up=%s)",
                    session.id,
                    urgent,
                    session.turn_count,
                    session.follow_up_slot,
                )
                return TurnDecision(complete=True, urgent_slot=None)
            logger.info(
                "[Policy] Session %s: postponing completion to follow up on %s",
                session.id,
                urgent,
            )
            return TurnDecision(complete=False, urgent_slot=urgent, deferred=True)

        return TurnDecision(complete=complete, urgent_slot=None if complete else urgent)
