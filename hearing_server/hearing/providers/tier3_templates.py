# hearing/providers/tier3_templates.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Tier3 Template Fallback
----------------------------------------
Fully offline, deterministic texts for every place the dialogue would
otherwise need the generation backend.

Design goals:
- NEVER depends on network or models.
- ALWAYS returns a usable, non-empty text.
- Guarantees forward progress: the fallback question walks the slot list
  (required first), so a session still fills up and ends when Tier1 and
  Tier2 are both down.

The greeting is also here: the first question of every session is fixed
and never generated, so creating a session cannot fail on the backend.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from hearing.core.slots import ALL_SLOTS
from hearing.models.session_model import Session

logger = logging.getLogger(__name__)


GREETING = "Thanks for your work today! What kind of customer meeting did you have?"

FALLBACK_ACKNOWLEDGEMENT = "Thank you."

PLACEHOLDER_SUMMARY = "Record of today's sales activity."

CLOSING_QUESTION = "Is there anything else you would like to share?"

# One plain question per slot, asked in ALL_SLOTS order.
SLOT_QUESTIONS: Dict[str, str] = {
    "customer": "Which company did you visit?",
    "project": "What project or deal was it about?",
    "next_action": "What is the next action?",
    "budget": "How did the budget look?",
    "schedule": "What does the schedule look like?",
    "participants": "Who attended the meeting?",
    "location": "Where did the meeting take place?",
    "issues": "Were there any issues or risks?",
    "key_person_reaction": "How did the key person react?",
    "positive_points": "What was the customer most interested in?",
    "atmosphere_change": "Was there a moment when the mood of the meeting changed?",
    "competitor_info": "Are they comparing us with any competitors?",
    "enthusiasm_level": "How enthusiastic was the customer: high, medium or low?",
    "budget_reaction": "How did they react to the price?",
    "concerns_mood": "How serious did their concerns feel?",
    "next_step_mood": "How confident are you about the next step?",
    "closing_possibility": "What do you think the chance of closing is, in percent?",
}

# Steering questions for urgent follow-ups (a trigger word in the last
# answer pointed at one of these slots).
FOLLOW_UP_QUESTIONS: Dict[str, str] = {
    "competitor_info": "Could you tell me a bit more about the competitors?",
    "budget": "Could you tell me concretely how big the budget is?",
    "closing_possibility": "That sounds positive. How likely do you think it is to close?",
    "issues": "Could you tell me more about that issue?",
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def follow_up_question(slot: str) -> str:
    return FOLLOW_UP_QUESTIONS.get(slot) or SLOT_QUESTIONS.get(slot) or CLOSING_QUESTION


def fallback_question(session: Session, urgent_slot: Optional[str] = None) -> str:
    """
    Deterministic next question.

    - urgent_slot given  -> the follow-up question for that slot
    - otherwise          -> question for the first unfilled slot
                            (required slots first, then optional) that
                            has not been asked yet in this session
    - all asked          -> the first unfilled slot again
    - everything filled  -> a closing question
    """
    if urgent_slot:
        return follow_up_question(urgent_slot)

    unfilled = [name for name in ALL_SLOTS if not session.is_slot_filled(name)]
    if not unfilled:
        return CLOSING_QUESTION

    asked = {qa.question for qa in session.history}
    for name in unfilled:
        if SLOT_QUESTIONS[name] not in asked:
            return SLOT_QUESTIONS[name]
    return SLOT_QUESTIONS[unfilled[0]]
