# hearing/routers/sessions.py
# -*- coding: utf-8 -*-
"""
Hearing Server — /sessions router
---------------------------------
Thin HTTP adapter over the dialogue orchestrator. No business logic lives
here: every endpoint validates its payload, calls exactly one orchestrator
operation and serializes the result.

  POST   /sessions                  -> create_session
  GET    /sessions/{id}             -> get_session
  POST   /sessions/{id}/answers     -> submit_answer
  POST   /sessions/{id}/end         -> end_session
  DELETE /sessions/{id}             -> discard_session

Errors:
  SessionNotFound -> 404
  empty answer    -> 422
  anything else   -> 500 (details hidden unless settings.debug)
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from hearing.core.config import settings
from hearing.core.dialogue import DialogueOrchestrator
from hearing.core.errors import SessionNotFound
from hearing.core.generation import ModelGenerationService
from hearing.models.session_model import Session
from hearing.models.session_request import AnswerRequest, CreateSessionRequest
from hearing.models.session_response import CreateSessionResponse, EndSessionResponse, TurnResult
from hearing.runtime_state import build_session_store

router = APIRouter(prefix="/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)

_orchestrator: Optional[DialogueOrchestrator] = None


def get_orchestrator() -> DialogueOrchestrator:
    """
    Process-wide orchestrator, built on first use from settings.

    Tests replace it with `app.dependency_overrides[get_orchestrator]`.
    """
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DialogueOrchestrator(
            store=build_session_store(settings),
            generator=ModelGenerationService(settings),
            settings=settings,
        )
    return _orchestrator


def _not_found(exc: SessionNotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _internal_error(route: str, exc: Exception) -> HTTPException:
    logger.exception("Unhandled exception in %s", route)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal server error in {route}.",
    )


@router.post(
    "",
    response_model=CreateSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    request: CreateSessionRequest,
    orchestrator: DialogueOrchestrator = Depends(get_orchestrator),
) -> CreateSessionResponse:
    logger.info("[/sessions] create owner_id=%s platform=%s", request.owner_id, request.platform)
    try:
        session, first_question = await orchestrator.create_session(
            request.owner_id, request.to_seed()
        )
    except Exception as exc:  # pragma: no cover
        if settings.debug:
            raise
        raise _internal_error("POST /sessions", exc) from exc

    return CreateSessionResponse(
        session_id=session.id,
        owner_id=session.owner_id,
        initial_question=first_question,
        status=session.status,
        created_at=session.started_at,
    )


@router.get("/{session_id}", response_model=Session)
async def get_session(
    session_id: str,
    orchestrator: DialogueOrchestrator = Depends(get_orchestrator),
) -> Session:
    try:
        return await orchestrator.get_session(session_id)
    except SessionNotFound as exc:
        raise _not_found(exc) from exc


@router.post(
    "/{session_id}/answers",
    response_model=TurnResult,
)
async def submit_answer(
    session_id: str,
    request: AnswerRequest,
    orchestrator: DialogueOrchestrator = Depends(get_orchestrator),
) -> TurnResult:
    """
    Submit the answer to the session's current question.

    Returns the acknowledgement plus either the next question or, once the
    session completes, the summary.
    """
    logger.info("[/sessions] answer session_id=%s chars=%d", session_id, len(request.answer))
    try:
        result = await orchestrator.submit_answer(session_id, request.answer)
    except SessionNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except Exception as exc:  # pragma: no cover
        if settings.debug:
            raise
        raise _internal_error("POST /sessions/{id}/answers", exc) from exc

    logger.info(
        "[/sessions] session_id=%s turns=%d complete=%s",
        session_id,
        result.questions_count,
        result.is_complete,
    )
    return result


@router.post("/{session_id}/end", response_model=EndSessionResponse)
async def end_session(
    session_id: str,
    orchestrator: DialogueOrchestrator = Depends(get_orchestrator),
) -> EndSessionResponse:
    try:
        session = await orchestrator.end_session(session_id)
    except SessionNotFound as exc:
        raise _not_found(exc) from exc

    return EndSessionResponse(
        status=session.status,
        summary=session.summary or "",
        slots=dict(session.slots),
        history=list(session.history),
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_session(
    session_id: str,
    orchestrator: DialogueOrchestrator = Depends(get_orchestrator),
) -> Response:
    await orchestrator.discard_session(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
