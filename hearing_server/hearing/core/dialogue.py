# hearing/core/dialogue.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Dialogue Orchestrator
--------------------------------------
Runs one hearing session turn by turn:

    answer -> extract slots -> commit answer (lease) ->
        acknowledgement  ||  policy -> next question / summary
    -> commit result (lease cleared) -> TurnResult

Every generation call goes through `_generate`, which runs the blocking
GenerationService method in a worker thread under `generation_timeout_s`.
A timeout, GenerationUnavailable or any other backend failure is replaced
by the Tier3 template for that step, so a turn always completes even when
the whole model chain is down.

Store writes are two-phase:
    1) history + slots are committed together with a `pending_turn_at`
       lease, guarded on the history length seen at load time.
    2) the next question (or completion) is committed and the lease cleared,
       guarded on the same history length and lease.
A second submission for the same session while the lease is live (or one
that loses the phase-1 race) gets a no-op result with the current state.

IMPORTANT:
- The first question is always the fixed greeting; creating a session never
  calls the backend.
- Completed sessions are never mutated again. submit_answer on a completed
  session returns the stored summary; end_session returns it unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from hearing.core.config import Settings, settings as default_settings
from hearing.core.errors import GenerationUnavailable, HearingError, InvalidSlotSchema, SessionNotFound
from hearing.core.generation import GenerationService
from hearing.core.policy import CompletionPolicy, PolicyParams
from hearing.core.safety import clamp_reply_text, sanitize_user_text
from hearing.core.slots import ALL_SLOTS, validate_slot_update
from hearing.models.session_model import Session, SessionSeed, utc_now
from hearing.models.session_response import TurnResult
from hearing.providers import tier3_templates
from hearing.runtime_state import SessionStore

logger = logging.getLogger(__name__)


class _TurnConflict(Exception):
    """Raised inside a store updater to abort a write; carries the stored session."""

    def __init__(self, session: Session) -> None:
        super().__init__(f"turn conflict on session {session.id}")
        self.session = session


class DialogueOrchestrator:
    """
    The four core operations over a SessionStore and a GenerationService.

    Parameters
    ----------
    store:
        Session persistence (atomic per-id update).
    generator:
        Text generation backend.
    policy:
        Completion policy; built from settings when omitted.
    settings:
        Limits and timeouts; the global settings when omitted.
    clock:
        UTC time source, overridable in tests.
    """

    def __init__(
        self,
        store: SessionStore,
        generator: GenerationService,
        policy: Optional[CompletionPolicy] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or default_settings
        self.store = store
        self.generator = generator
        self.policy = policy or CompletionPolicy(PolicyParams.from_settings(self.settings))
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_session(
        self,
        owner_id: str,
        seed: Optional[SessionSeed] = None,
    ) -> Tuple[Session, str]:
        """Create and store a new session. Returns (session, first_question)."""
        session = Session.new(owner_id, seed, first_question=tier3_templates.GREETING)
        await asyncio.to_thread(self.store.create, session)
        logger.info(
            "[Dialogue] Started session %s for owner %s (platform=%s, seeded slots=%s)",
            session.id,
            owner_id,
            session.platform,
            [name for name in ALL_SLOTS if session.is_slot_filled(name)],
        )
        return session, tier3_templates.GREETING

    async def get_session(self, session_id: str) -> Session:
        return await self._load(session_id)

    async def submit_answer(self, session_id: str, answer_text: str) -> TurnResult:
        """
        Process one answer to the session's current question.

        Raises
        ------
        SessionNotFound
            If the session does not exist (or expired).
        ValueError
            If the answer is empty after cleaning.
        """
        clean = sanitize_user_text(answer_text, self.settings.max_answer_chars)
        if clean.too_short:
            raise ValueError("answer must not be empty")
        answer = clean.sanitized

        session = await self._load(session_id)
        if session.is_completed:
            logger.info("[Dialogue] Session %s already completed; ignoring answer.", session_id)
            return self._result(session, acknowledgement="")

        now = self._clock()
        if session.lease_active(now, self.settings.turn_lease_s):
            logger.info(
                "[Dialogue] Session %s has a turn in progress since %s; ignoring duplicate answer.",
                session_id,
                session.pending_turn_at,
            )
            return self._result(session, acknowledgement="")

        question = session.current_question or tier3_templates.GREETING
        expected_turns = session.turn_count

        # 1) Slot extraction. Cancelled here -> keep the answer, drop the slots.
        try:
            slot_update = await self._extract(session, answer)
        except asyncio.CancelledError:
            await self._commit_cancelled_answer(session_id, expected_turns, question, answer, now)
            raise

        # 2) Phase-1 commit: slots + history + lease.
        def _begin_turn(current: Session) -> Session:
            if (
                current.is_completed
                or current.turn_count != expected_turns
                or current.lease_active(now, self.settings.turn_lease_s)
            ):
                raise _TurnConflict(current)
            return (
                current.with_slots(slot_update)
                .with_answer(question, answer, now)
                .with_pending_turn(now)
            )

        try:
            committed = await asyncio.to_thread(self.store.update, session_id, _begin_turn)
        except _TurnConflict as exc:
            logger.info(
                "[Dialogue] Session %s changed while processing an answer; returning current state.",
                session_id,
            )
            return self._result(exc.session, acknowledgement="")

        # 3) Acknowledgement runs alongside policy + question/summary.
        try:
            return await self._finish_turn(committed, answer)
        except asyncio.CancelledError:
            await self._commit_cancelled_turn(committed)
            raise

    async def end_session(self, session_id: str) -> Session:
        """
        Force completion, bypassing the policy. Idempotent.

        An already completed session is returned as stored; the summary is
        never regenerated.
        """
        session = await self._load(session_id)
        if session.is_completed:
            return session

        summary = await self._summarize(session)
        now = self._clock()

        def _complete(current: Session) -> Session:
            if current.is_completed:
                raise _TurnConflict(current)
            return current.completed(summary, now)

        try:
            ended = await asyncio.to_thread(self.store.update, session_id, _complete)
        except _TurnConflict as exc:
            return exc.session
        logger.info(
            "[Dialogue] Session %s ended by request after %d turns.", session_id, ended.turn_count
        )
        return ended

    async def discard_session(self, session_id: str) -> None:
        """Delete a session. Unknown ids are ignored."""
        await asyncio.to_thread(self.store.delete, session_id)
        logger.info("[Dialogue] Discarded session %s", session_id)

    # ------------------------------------------------------------------
    # Turn steps
    # ------------------------------------------------------------------

    async def _load(self, session_id: str) -> Session:
        session = await asyncio.to_thread(self.store.get, session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def _finish_turn(self, committed: Session, answer: str) -> TurnResult:
        decision = self.policy.decide(committed)
        if decision.complete:
            follow = self._summarize(committed)
        else:
            follow = self._next_question(committed, decision.urgent_slot)
        acknowledgement, text = await asyncio.gather(self._acknowledge(answer, committed), follow)
        summary = text if decision.complete else None
        question = None if decision.complete else text

        now = self._clock()

        def _close_turn(current: Session) -> Session:
            if (
                current.is_completed
                or current.turn_count != committed.turn_count
                or current.pending_turn_at != committed.pending_turn_at
            ):
                raise _TurnConflict(current)
            if decision.complete:
                return current.completed(summary, now)
            follow_up_slot = decision.urgent_slot if decision.deferred else None
            return current.with_question(question, follow_up_slot=follow_up_slot)

        try:
            final = await asyncio.to_thread(self.store.update, committed.id, _close_turn)
        except _TurnConflict as exc:
            logger.warning(
                "[Dialogue] Session %s was changed by another request during turn %d; "
                "dropping this turn's result.",
                committed.id,
                committed.turn_count,
            )
            return self._result(exc.session, acknowledgement=acknowledgement)

        if final.is_completed:
            logger.info(
                "[Dialogue] Session %s completed after %d turns.", final.id, final.turn_count
            )
        else:
            logger.debug(
                "[Dialogue] Session %s turn %d -> next question (follow-up=%s)",
                final.id,
                final.turn_count,
                decision.urgent_slot,
            )
        return self._result(final, acknowledgement=acknowledgement)

    async def _extract(self, session: Session, answer: str) -> Dict[str, str]:
        try:
            raw = await self._generate(
                "extract",
                self.generator.extract_slots,
                answer,
                dict(session.slots),
                ALL_SLOTS,
            )
        except GenerationUnavailable as exc:
            logger.warning("[Dialogue] Slot extraction failed for %s: %s", session.id, exc)
            return {}

        if not isinstance(raw, dict):
            logger.warning(
                "[Dialogue] Slot extraction for %s returned %s, not a mapping; ignoring.",
                session.id,
                type(raw).__name__,
            )
            return {}
        try:
            return validate_slot_update(raw)
        except InvalidSlotSchema as exc:
            logger.warning(
                "[Dialogue] Dropping unknown slot keys for %s: %s", session.id, exc.unknown_keys
            )
            return exc.accepted

    async def _acknowledge(self, answer: str, session: Session) -> str:
        return await self._text_or_fallback(
            "ack",
            self.settings.max_acknowledgement_chars,
            tier3_templates.FALLBACK_ACKNOWLEDGEMENT,
            self.generator.generate_acknowledgement,
            answer,
            dict(session.slots),
        )

    async def _next_question(self, session: Session, urgent_slot: Optional[str]) -> str:
        return await self._text_or_fallback(
            "question",
            self.settings.max_question_chars,
            tier3_templates.fallback_question(session, urgent_slot),
            self.generator.generate_next_question,
            session.transcript(),
            dict(session.slots),
            urgent_slot,
        )

    async def _summarize(self, session: Session) -> str:
        return await self._text_or_fallback(
            "summary",
            self.settings.max_summary_chars,
            tier3_templates.PLACEHOLDER_SUMMARY,
            self.generator.generate_summary,
            session.transcript(),
            dict(session.slots),
        )

    # ------------------------------------------------------------------
    # Generation plumbing
    # ------------------------------------------------------------------

    async def _generate(self, purpose: str, fn: Callable[..., Any], *args: Any) -> Any:
        """
        Run a blocking generation call in a thread, bounded by the timeout.

        Raises
        ------
        GenerationUnavailable
            On timeout or any backend failure.
        """
        timeout = self.settings.generation_timeout_s
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationUnavailable(f"{purpose} timed out after {timeout}s") from exc
        except GenerationUnavailable:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("[Dialogue] Unexpected error from generation backend (%s).", purpose)
            raise GenerationUnavailable(f"{purpose} failed: {exc}") from exc

    async def _text_or_fallback(
        self,
        purpose: str,
        limit: int,
        fallback: str,
        fn: Callable[..., Any],
        *args: Any,
    ) -> str:
        try:
            text = await self._generate(purpose, fn, *args)
        except GenerationUnavailable as exc:
            logger.warning("[Dialogue] %s generation failed, using template: %s", purpose, exc)
            return fallback
        if not isinstance(text, str) or not text.strip():
            logger.warning("[Dialogue] %s generation returned no text, using template.", purpose)
            return fallback
        return clamp_reply_text(text.strip(), limit)

    # ------------------------------------------------------------------
    # Cancellation recovery (shielded: the task is already cancelled)
    # ------------------------------------------------------------------

    async def _commit_cancelled_answer(
        self,
        session_id: str,
        expected_turns: int,
        question: str,
        answer: str,
        at: datetime,
    ) -> None:
        def _keep_answer(current: Session) -> Session:
            if (
                current.is_completed
                or current.turn_count != expected_turns
                or current.lease_active(at, self.settings.turn_lease_s)
            ):
                raise _TurnConflict(current)
            answered = current.with_answer(question, answer, at)
            return answered.with_question(tier3_templates.fallback_question(answered))

        await self._recover(session_id, _keep_answer)

    async def _commit_cancelled_turn(self, committed: Session) -> None:
        def _release(current: Session) -> Session:
            if (
                current.is_completed
                or current.turn_count != committed.turn_count
                or current.pending_turn_at != committed.pending_turn_at
            ):
                raise _TurnConflict(current)
            return current.with_question(tier3_templates.fallback_question(current))

        await self._recover(committed.id, _release)

    async def _recover(self, session_id: str, updater: Callable[[Session], Session]) -> None:
        try:
            await asyncio.shield(asyncio.to_thread(self.store.update, session_id, updater))
        except _TurnConflict:
            return
        except HearingError as exc:
            logger.warning(
                "[Dialogue] Could not save cancelled turn for %s: %s", session_id, exc
            )
            return
        logger.warning(
            "[Dialogue] Turn for %s was cancelled; saved answer with a template question.",
            session_id,
        )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @staticmethod
    def _result(session: Session, acknowledgement: str) -> TurnResult:
        return TurnResult(
            acknowledgement=acknowledgement,
            next_question=None if session.is_completed else session.current_question,
            is_complete=session.is_completed,
            summary=session.summary if session.is_completed else None,
            slots=dict(session.slots),
            questions_count=session.turn_count,
        )
