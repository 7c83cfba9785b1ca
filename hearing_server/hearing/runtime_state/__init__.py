"""
Runtime state package for the hearing server.

This package owns the persisted form of every hearing session, so a
conversation survives between turns (and process restarts, with Redis).

Typical usage (see routers/sessions.py and core/dialogue.py):

    from hearing.runtime_state import build_session_store

    store = build_session_store(settings)
    store.create(session)
    session = store.update(session_id, lambda s: s.with_question(question))
"""

from .sessions import (
    SessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    ResilientSessionStore,
    build_session_store,
)

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "ResilientSessionStore",
    "build_session_store",
]
