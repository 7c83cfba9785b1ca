# hearing/core/prompts.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Prompt builders
--------------------------------
System + user prompts for the four generation operations. Each builder
returns (system_prompt, user_prompt).

The transcript is replayed verbatim, in order, as "Q: ... / A: ..." blocks.
"""

from __future__ import annotations

import json
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from hearing.core.slots import ALL_SLOTS, SLOT_DESCRIPTIONS

# Hints that steer the next question, by urgent slot.
_FOLLOW_UP_HINTS: Dict[str, str] = {
    "competitor_info": "The user mentioned competitors. Ask for details about them.",
    "budget": "The user mentioned money. Ask concretely about the budget.",
    "closing_possibility": "The user sounded positive. Ask how likely the deal is to close.",
    "issues": "The user mentioned a problem. Ask for details of that issue.",
}

# Signals read from the previous answer, each adding one steering line.
# Checked independently; an answer can carry several.
ANSWER_SIGNALS: Tuple[Tuple[str, "re.Pattern[str]", str], ...] = (
    (
        "positive",
        re.compile(
            r"\b(?:positive|promising|interested|agreed|approved|progress|went well)\b"
            r"|前向き|好感触|興味|良い|進展|決まり|合意|了承",
            re.IGNORECASE,
        ),
        "The reaction was positive. Dig deeper into this positive flow.",
    ),
    (
        "concern",
        re.compile(
            r"\b(?:difficult|tough|problems?|issues?|concerns?|worried|hesitant|on hold)\b"
            r"|難しい|厳しい|課題|問題|懸念|不安|渋い|保留",
            re.IGNORECASE,
        ),
        "Issues or concerns came up. Ask about the details and countermeasures.",
    ),
    (
        "specific",
        re.compile(
            r"\$\s?\d|\d+\s*(?:k|m|yen|dollars?)\b"
            r"|\b(?:next week|this month|next month|director|manager|president|ceo)\b"
            r"|\d+\s*[万円億]|来週|今月|来月|部長|課長|社長",
            re.IGNORECASE,
        ),
        "Concrete details (amounts, dates, titles) came up. Confirm the related details.",
    ),
)


def answer_signals(answer_text: str) -> List[str]:
    """Names of the ANSWER_SIGNALS found in `answer_text`, in table order."""
    return [name for name, pattern, _ in ANSWER_SIGNALS if pattern.search(answer_text or "")]


def _signal_hints(answer_text: str) -> List[str]:
    return [
        f"-> {hint}" for _, pattern, hint in ANSWER_SIGNALS if pattern.search(answer_text or "")
    ]


def format_transcript(transcript: Sequence[Mapping[str, str]]) -> str:
    return "\n\n".join(f"Q: {qa['question']}\nA: {qa['answer']}" for qa in transcript)


def _slots_json(slots: Mapping[str, str]) -> str:
    return json.dumps(dict(slots), ensure_ascii=False, indent=2)


def extraction_prompt(
    answer_text: str,
    current_slots: Mapping[str, str],
    schema: Sequence[str] = ALL_SLOTS,
) -> Tuple[str, str]:
    field_lines = "\n".join(
        f"- {name}: {SLOT_DESCRIPTIONS.get(name, name)}" for name in schema
    )
    user = (
        "Extract sales report information from the answer below.\n\n"
        f'Answer: "{answer_text}"\n\n'
        "Current information:\n"
        f"{_slots_json(current_slots)}\n\n"
        "Return a JSON object using only these keys:\n"
        f"{field_lines}\n\n"
        "Only include keys the answer actually provides. "
        "Do not invent keys. Return JSON only."
    )
    return "You are a JSON extractor. Return only valid JSON.", user


def acknowledgement_prompt(answer_text: str, slots: Mapping[str, str], max_chars: int) -> Tuple[str, str]:
    user = (
        f'User answer: "{answer_text}"\n\n'
        "Information extracted so far:\n"
        f"{_slots_json(slots)}\n\n"
        f"Reply with one short, empathetic acknowledgement of at most {max_chars} characters, "
        'for example "Understood.", "I see.", "Thanks, that helps."\n'
        "Do not ask a question.\n\n"
        "Acknowledgement:"
    )
    return "You are an empathetic assistant.", user


def next_question_prompt(
    transcript: Sequence[Mapping[str, str]],
    slots: Mapping[str, str],
    urgent_slot_hint: Optional[str],
    max_chars: int,
) -> Tuple[str, str]:
    unfilled: List[str] = [name for name in ALL_SLOTS if not (slots.get(name) or "").strip()]
    last_answer = transcript[-1]["answer"] if transcript else ""

    lines: List[str] = [
        "You help a field sales worker write today's activity report through a natural conversation.",
        "Draw out the facts of the meeting as well as its mood and temperature.",
        "",
    ]
    if urgent_slot_hint:
        hint = _FOLLOW_UP_HINTS.get(
            urgent_slot_hint,
            f"Ask specifically about: {SLOT_DESCRIPTIONS.get(urgent_slot_hint, urgent_slot_hint)}.",
        )
        lines += [f"PRIORITY: {hint} (slot: {urgent_slot_hint})", ""]

    lines += [
        "Information collected so far:",
        _slots_json(slots),
        "",
        f"Still missing: {', '.join(unfilled) if unfilled else 'nothing'}",
        "",
        "Conversation so far:",
        format_transcript(transcript),
        "",
        f'Previous answer: "{last_answer}"',
        *_signal_hints(last_answer),
        f"Turns so far: {len(transcript)}",
        "",
        "Strategy:",
        "1. Early turns (1-3): customer, project, next action.",
        "2. Middle turns (4-8): dig into what the user just said (reactions, people, amounts, issues).",
        "3. Late turns (9+): closing likelihood, most important next step, open concerns.",
        "",
        "Rules:",
        "- Build on the previous answer and start by briefly acknowledging it.",
        "- Ask exactly one question.",
        f"- At most {max_chars} characters.",
        "",
        "Next question:",
    ]
    return "You are a helpful assistant for creating sales reports.", "\n".join(lines)


def summary_prompt(
    transcript: Sequence[Mapping[str, str]],
    slots: Mapping[str, str],
    max_chars: int,
) -> Tuple[str, str]:
    user = (
        "Write a sales activity report summary from the information below.\n\n"
        "Collected information:\n"
        f"{_slots_json(slots)}\n\n"
        "Conversation:\n"
        f"{format_transcript(transcript)}\n\n"
        f"Summarise the key points in at most {max_chars} characters:"
    )
    return "You are a professional report writer.", user
