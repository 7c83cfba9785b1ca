# hearing/core/generation.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Text generation service
----------------------------------------
The four operations the dialogue needs from a text generation backend:

    extract_slots(answer, current_slots, schema) -> partial slot update
    generate_acknowledgement(answer, slots)      -> short text
    generate_next_question(transcript, slots, urgent_slot_hint) -> question
    generate_summary(transcript, slots)          -> summary

`GenerationService` is the interface the orchestrator depends on.
`ModelGenerationService` implements it on top of the Tier1/Tier2 chain
(generate.call_text_model). Every method raises GenerationUnavailable when
the backend fails or returns something that does not parse; it never
returns a made-up default. Defaults are the orchestrator's business.

Calls are blocking. The orchestrator runs them in worker threads with a
timeout.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence

from hearing.core import prompts
from hearing.core.config import Settings
from hearing.core.errors import GenerationUnavailable
from hearing.core.generate import build_messages, call_text_model
from hearing.core.safety import clamp_reply_text, strip_wrapping_quotes
from hearing.core.slots import ALL_SLOTS
from hearing.utils import log_duration

logger = logging.getLogger(__name__)

Transcript = Sequence[Mapping[str, str]]


class GenerationService(ABC):
    """Abstract text generation backend used by the dialogue orchestrator."""

    @abstractmethod
    def extract_slots(
        self,
        answer_text: str,
        current_slots: Mapping[str, str],
        schema: Sequence[str] = ALL_SLOTS,
    ) -> Dict[str, Any]:
        """Return a (possibly partial, unvalidated) slot update for the answer."""

    @abstractmethod
    def generate_acknowledgement(self, answer_text: str, slots: Mapping[str, str]) -> str:
        """Return a short acknowledgement of the answer."""

    @abstractmethod
    def generate_next_question(
        self,
        transcript: Transcript,
        slots: Mapping[str, str],
        urgent_slot_hint: Optional[str] = None,
    ) -> str:
        """Return the next question, steered to `urgent_slot_hint` when given."""

    @abstractmethod
    def generate_summary(self, transcript: Transcript, slots: Mapping[str, str]) -> str:
        """Return the final report summary."""


# ---------------------------------------------------------------------------
# JSON extraction from model output
# ---------------------------------------------------------------------------

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of model output.

    Accepts bare JSON, JSON wrapped in ``` fences, or text that ends with a
    JSON object. Anything else is malformed.

    Raises
    ------
    GenerationUnavailable
        If no JSON object can be parsed.
    """
    if not text or not text.strip():
        raise GenerationUnavailable("Model returned empty output.")

    cleaned = _CODE_FENCE_RE.sub("", text.strip()).strip()
    try:
        obj = json.loads(cleaned)
    except json.JSONDecodeError:
        # Fall back to the outermost {...} block in the text.
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise GenerationUnavailable("Model output contains no JSON object.")
        try:
            obj = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as exc:
            raise GenerationUnavailable(f"Model output is not valid JSON: {exc}") from exc

    if not isinstance(obj, dict):
        raise GenerationUnavailable(f"Model JSON is a {type(obj).__name__}, not an object.")
    return obj


def _require_text(text: str, purpose: str, limit: int) -> str:
    cleaned = strip_wrapping_quotes(text or "")
    if not cleaned:
        raise GenerationUnavailable(f"Model returned empty {purpose}.")
    return clamp_reply_text(cleaned, limit)


# ---------------------------------------------------------------------------
# Model-backed implementation
# ---------------------------------------------------------------------------


class ModelGenerationService(GenerationService):
    """GenerationService over the Tier1 (OpenRouter) -> Tier2 (Ollama) chain."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @log_duration("extract_slots", logger, logging.DEBUG)
    def extract_slots(
        self,
        answer_text: str,
        current_slots: Mapping[str, str],
        schema: Sequence[str] = ALL_SLOTS,
    ) -> Dict[str, Any]:
        system, user = prompts.extraction_prompt(answer_text, current_slots, schema)
        result = call_text_model(
            build_messages(system, user),
            purpose="extract",
            max_tokens=500,
            temperature=0.3,
            json_mode=True,
        )
        extracted = parse_json_object(result.text)
        logger.debug(
            "[generation] extracted keys=%s via %s", sorted(extracted), result.used_tier
        )
        return extracted

    @log_duration("generate_acknowledgement", logger, logging.DEBUG)
    def generate_acknowledgement(self, answer_text: str, slots: Mapping[str, str]) -> str:
        limit = self.settings.max_acknowledgement_chars
        system, user = prompts.acknowledgement_prompt(answer_text, slots, limit)
        result = call_text_model(
            build_messages(system, user),
            purpose="ack",
            max_tokens=50,
            temperature=0.7,
        )
        return _require_text(result.text, "acknowledgement", limit)

    @log_duration("generate_next_question", logger, logging.DEBUG)
    def generate_next_question(
        self,
        transcript: Transcript,
        slots: Mapping[str, str],
        urgent_slot_hint: Optional[str] = None,
    ) -> str:
        limit = self.settings.max_question_chars
        system, user = prompts.next_question_prompt(transcript, slots, urgent_slot_hint, limit)
        result = call_text_model(
            build_messages(system, user),
            purpose="question",
            max_tokens=100,
            temperature=0.7,
        )
        return _require_text(result.text, "question", limit)

    @log_duration("generate_summary", logger, logging.DEBUG)
    def generate_summary(self, transcript: Transcript, slots: Mapping[str, str]) -> str:
        limit = self.settings.max_summary_chars
        system, user = prompts.summary_prompt(transcript, slots, limit)
        result = call_text_model(
            build_messages(system, user),
            purpose="summary",
            max_tokens=400,
            temperature=0.5,
        )
        return _require_text(result.text, "summary", limit)
