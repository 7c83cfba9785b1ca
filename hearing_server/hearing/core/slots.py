# hearing/core/slots.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Slot schema
----------------------------
The fixed set of report fields ("slots") a hearing session fills in.

- REQUIRED_SLOTS gate basic completion.
- OPTIONAL_SLOTS deepen the report.
- QUALITY_SLOTS is the optional subset the completion policy scores.

Slot names form a closed set. Anything coming back from the generation
backend is checked against it before it may touch a session.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Tuple

from hearing.core.errors import InvalidSlotSchema

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Slot catalog
# ---------------------------------------------------------------------------

REQUIRED_SLOTS: Tuple[str, ...] = (
    "customer",
    "project",
    "next_action",
)

OPTIONAL_SLOTS: Tuple[str, ...] = (
    "budget",
    "schedule",
    "participants",
    "location",
    "issues",
    "key_person_reaction",
    "positive_points",
    "atmosphere_change",
    "competitor_info",
    "enthusiasm_level",
    "budget_reaction",
    "concerns_mood",
    "next_step_mood",
    "closing_possibility",
)

QUALITY_SLOTS: Tuple[str, ...] = (
    "budget",
    "schedule",
    "participants",
    "location",
    "key_person_reaction",
    "positive_points",
    "atmosphere_change",
    "enthusiasm_level",
    "closing_possibility",
)

ALL_SLOTS: Tuple[str, ...] = REQUIRED_SLOTS + OPTIONAL_SLOTS

# Used in the extraction prompt so the model knows what goes where.
SLOT_DESCRIPTIONS: Dict[str, str] = {
    "customer": "customer or company name",
    "project": "project or deal name",
    "next_action": "next action(s), comma separated if several",
    "budget": "budget or amount discussed",
    "schedule": "schedule, deadline or delivery date",
    "participants": "people who attended, comma separated",
    "location": "where the meeting took place",
    "issues": "problems or risks, comma separated",
    "key_person_reaction": "how the key person reacted, their temperature",
    "positive_points": "what the customer was interested in",
    "atmosphere_change": "the moment the mood of the meeting changed",
    "competitor_info": "competitors or alternatives being compared",
    "enthusiasm_level": "customer enthusiasm (high / medium / low)",
    "budget_reaction": "reaction to the price (positive / reluctant / has room)",
    "concerns_mood": "how serious the concerns felt",
    "next_step_mood": "how confident the next step feels",
    "closing_possibility": "estimated chance of closing, in percent",
}


def empty_slots() -> Dict[str, str]:
    """Return a fresh slot map with every slot unfilled."""
    return {name: "" for name in ALL_SLOTS}


def is_filled(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


# ---------------------------------------------------------------------------
# Validation / merge
# ---------------------------------------------------------------------------


def _coerce_value(value: Any) -> str:
    """
    Turn a value from the model into a slot string.

    Lists (e.g. several participants) are joined with ", ".
    None and unsupported types become "".
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        parts = [_coerce_value(v) for v in value]
        return ", ".join(p for p in parts if p)
    return ""


def validate_slot_update(raw: Mapping[str, Any]) -> Dict[str, str]:
    """
    Check a raw slot update against the schema.

    Returns the update as {slot_name: str} for known slots.

    Raises
    ------
    InvalidSlotSchema
        If `raw` has keys outside ALL_SLOTS. The exception carries the
        valid subset in `.accepted`.
    """
    accepted: Dict[str, str] = {}
    unknown = []
    for key, value in raw.items():
        if key not in ALL_SLOTS:
            unknown.append(str(key))
            continue
        accepted[key] = _coerce_value(value)

    if unknown:
        raise InvalidSlotSchema(unknown, accepted)
    return accepted


def merge_slot_updates(
    current: Mapping[str, str],
    update: Mapping[str, str],
) -> Dict[str, str]:
    """
    Merge an already validated update into `current`.

    Only non-empty values that differ from the current value are applied,
    so a filled slot is never cleared and re-applying the same update is
    a no-op. Keys outside the schema are ignored.
    """
    merged = dict(current)
    for key, value in update.items():
        if key not in ALL_SLOTS:
            continue
        if not is_filled(value):
            continue
        value = value.strip()
        if value != merged.get(key, ""):
            merged[key] = value
    return merged
