"""
Shared fixtures: a scripted GenerationService, an in-memory store and an
orchestrator wired to both.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Sequence

import pytest

from hearing.core.config import Settings
from hearing.core.dialogue import DialogueOrchestrator
from hearing.core.errors import GenerationUnavailable
from hearing.core.generation import GenerationService
from hearing.core.slots import ALL_SLOTS
from hearing.runtime_state import InMemorySessionStore


class ScriptedGenerator(GenerationService):
    """
    Deterministic GenerationService for tests.

    `extractions` are returned one per extract_slots call (then {}).
    Every call is recorded in `calls` as (method, payload).
    """

    def __init__(
        self,
        extractions: Optional[Sequence[Dict[str, Any]]] = None,
        acknowledgement: str = "Understood.",
        question: str = "Could you tell me more about that?",
        summary: str = "Met Acme about Project X; sending a quote next.",
        fail: bool = False,
    ) -> None:
        self.extractions: List[Dict[str, Any]] = list(extractions or [])
        self.acknowledgement = acknowledgement
        self.question = question
        self.summary = summary
        self.fail = fail
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def _record(self, method: str, payload: Any) -> None:
        with self._lock:
            self.calls.append((method, payload))
        if self.fail:
            raise GenerationUnavailable(f"{method}: backend down")

    def calls_to(self, method: str) -> List[Any]:
        return [payload for name, payload in self.calls if name == method]

    def extract_slots(self, answer_text, current_slots, schema=ALL_SLOTS):
        self._record("extract_slots", answer_text)
        return self.extractions.pop(0) if self.extractions else {}

    def generate_acknowledgement(self, answer_text, slots):
        self._record("generate_acknowledgement", answer_text)
        return self.acknowledgement

    def generate_next_question(self, transcript, slots, urgent_slot_hint=None):
        self._record("generate_next_question", urgent_slot_hint)
        return self.question

    def generate_summary(self, transcript, slots):
        self._record("generate_summary", len(transcript))
        return self.summary


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        debug=False,
        redis_url=None,
        tier1_api_key=None,
        generation_timeout_s=2.0,
    )


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore(ttl_s=3600)


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def orchestrator(store, generator, test_settings) -> DialogueOrchestrator:
    return DialogueOrchestrator(store=store, generator=generator, settings=test_settings)
