# hearing/runtime_state/sessions.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Runtime Session Store
--------------------------------------

This module owns the serialized form of every hearing session.

Purpose
~~~~~~~
- Keep per-session state between turns, with expiry (sessions are
  reclaimed `session_ttl_s` after their last write).
- Give the dialogue orchestrator an atomic read-modify-write per session id,
  so two racing submissions for the same session cannot both apply.

Design notes
~~~~~~~~~~~~
- `SessionStore` is the interface. Implementations:
    * InMemorySessionStore  : process-local dict, per-key locks, TTL on access
                              plus a periodic sweep on write.
    * RedisSessionStore     : redis-py, SETEX + per-key redis lock.
    * ResilientSessionStore : Redis first, in-process fallback when Redis
                              is unreachable (availability over durability).
- `build_session_store()` picks one at startup from settings.
- Records are stored as Session JSON, so both backends round-trip the exact
  same shape.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import redis
from pydantic import ValidationError

from hearing.core.config import Settings
from hearing.core.errors import SessionNotFound, StoreUnavailable
from hearing.models.session_model import Session
from hearing.utils import get_logger


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logger = get_logger("hearing.runtime_state")

SessionUpdater = Callable[[Session], Session]

DEFAULT_TTL_S = 3600
DEFAULT_PRUNE_INTERVAL_S = 60.0


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class SessionStore(ABC):
    """Key-value persistence for sessions, keyed by session id."""

    @abstractmethod
    def create(self, session: Session) -> Session:
        """Store a new session (overwrites an existing record with the same id)."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Return the session, or None if unknown or expired."""

    @abstractmethod
    def update(self, session_id: str, updater: SessionUpdater) -> Session:
        """
        Atomically apply `updater` to the stored session and save the result.

        The updater runs while the per-key lock is held. It may raise to
        abort the update; nothing is written in that case.

        Raises
        ------
        SessionNotFound
            If the session does not exist (or expired).
        """

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove a session. Unknown ids are ignored."""


def _decode(session_id: str, raw: str) -> Optional[Session]:
    try:
        return Session.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning(
            "[SessionStore] Dropping unreadable record for %s: %s", session_id, exc
        )
        return None


# ---------------------------------------------------------------------------
# In-process store
# ---------------------------------------------------------------------------


class InMemorySessionStore(SessionStore):
    """
    Process-local session store.

    Records are kept as JSON strings (not live objects) so callers never
    share state with the store, exactly like the Redis backend.

    Parameters
    ----------
    ttl_s:
        Seconds a record lives after its last write.
    clock:
        Monotonic time source, overridable in tests.
    prune_interval_s:
        Every write sweeps expired records once this many seconds have
        passed since the last sweep. None disables the sweep.
    """

    def __init__(
        self,
        ttl_s: int = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
        prune_interval_s: Optional[float] = DEFAULT_PRUNE_INTERVAL_S,
    ) -> None:
        self.ttl_s = ttl_s
        self.prune_interval_s = prune_interval_s
        self._clock = clock
        self._records: Dict[str, Tuple[float, str]] = {}
        self._records_guard = threading.Lock()
        self._last_prune = clock()
        # id -> [lock, number of threads using it]; dropped at zero users
        self._key_locks: Dict[str, List[Any]] = {}
        self._key_locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[None]:
        with self._key_locks_guard:
            entry = self._key_locks.get(session_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._key_locks[session_id] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._key_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[session_id]

    def _write(self, session: Session) -> None:
        now = self._clock()
        with self._records_guard:
            self._records[session.id] = (now + self.ttl_s, session.model_dump_json())
            due = (
                self.prune_interval_s is not None
                and now - self._last_prune >= self.prune_interval_s
            )
            if due:
                self._last_prune = now
        if due:
            self.prune_expired()

    def _read(self, session_id: str) -> Optional[Session]:
        with self._records_guard:
            entry = self._records.get(session_id)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at <= self._clock():
                logger.info("[SessionStore] Session %s expired", session_id)
                del self._records[session_id]
                return None
        return _decode(session_id, raw)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, session: Session) -> Session:
        with self._locked(session.id):
            self._write(session)
        logger.info("[SessionStore] Created session %s (memory)", session.id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._read(session_id)

    def update(self, session_id: str, updater: SessionUpdater) -> Session:
        with self._locked(session_id):
            current = self._read(session_id)
            if current is None:
                raise SessionNotFound(session_id)
            updated = updater(current)
            self._write(updated)
            return updated

    def delete(self, session_id: str) -> None:
        with self._locked(session_id):
            with self._records_guard:
                removed = self._records.pop(session_id, None)
        if removed is not None:
            logger.info("[SessionStore] Deleted session %s (memory)", session_id)

    def prune_expired(self) -> int:
        """
        Remove every expired record.

        Returns
        -------
        int
            Number of deleted sessions.
        """
        now = self._clock()
        with self._records_guard:
            expired = [sid for sid, (exp, _) in self._records.items() if exp <= now]
            for sid in expired:
                del self._records[sid]
        for sid in expired:
            logger.info("[SessionStore] Pruning expired session %s", sid)
        return len(expired)

    def __len__(self) -> int:
        with self._records_guard:
            return len(self._records)


# ---------------------------------------------------------------------------
# Redis store
# ---------------------------------------------------------------------------


class RedisSessionStore(SessionStore):
    """
    Durable session store on Redis.

    Every write is a SETEX, so the TTL is refreshed on each turn. Updates
    hold a redis lock on "<prefix>lock:<id>" for the read-modify-write.
    Any redis-py error is raised as StoreUnavailable.
    """

    def __init__(
        self,
        client: "redis.Redis",
        ttl_s: int = DEFAULT_TTL_S,
        key_prefix: str = "hearing:",
        lock_timeout_s: float = 10.0,
    ) -> None:
        self.client = client
        self.ttl_s = ttl_s
        self.key_prefix = key_prefix
        self.lock_timeout_s = lock_timeout_s

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout_s: float = 2.0,
        **kwargs,
    ) -> "RedisSessionStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout_s,
            socket_connect_timeout=socket_timeout_s,
        )
        return cls(client, **kwargs)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}session:{session_id}"

    def _lock_name(self, session_id: str) -> str:
        return f"{self.key_prefix}lock:{session_id}"

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as exc:
            logger.warning("[SessionStore] Redis ping failed: %s", exc)
            return False

    def _save(self, session: Session) -> None:
        self.client.setex(self._key(session.id), self.ttl_s, session.model_dump_json())

    def create(self, session: Session) -> Session:
        try:
            self._save(session)
        except redis.RedisError as exc:
            raise StoreUnavailable(f"Redis create failed: {exc}") from exc
        logger.info("[SessionStore] Created session %s (redis)", session.id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        try:
            raw = self.client.get(self._key(session_id))
        except redis.RedisError as exc:
            raise StoreUnavailable(f"Redis get failed: {exc}") from exc
        if raw is None:
            return None
        return _decode(session_id, raw)

    def update(self, session_id: str, updater: SessionUpdater) -> Session:
        try:
            with self.client.lock(
                self._lock_name(session_id),
                timeout=self.lock_timeout_s,
                blocking_timeout=self.lock_timeout_s,
            ):
                raw = self.client.get(self._key(session_id))
                current = _decode(session_id, raw) if raw is not None else None
                if current is None:
                    raise SessionNotFound(session_id)
                updated = updater(current)
                self._save(updated)
                return updated
        except redis.RedisError as exc:
            raise StoreUnavailable(f"Redis update failed: {exc}") from exc

    def delete(self, session_id: str) -> None:
        try:
            self.client.delete(self._key(session_id))
        except redis.RedisError as exc:
            raise StoreUnavailable(f"Redis delete failed: {exc}") from exc
        logger.info("[SessionStore] Deleted session %s (redis)", session_id)


# ---------------------------------------------------------------------------
# Redis with in-process fallback
# ---------------------------------------------------------------------------


class ResilientSessionStore(SessionStore):
    """
    Primary store with an in-process fallback.

    When the primary raises StoreUnavailable the same call is served by the
    fallback and a warning is logged; the request itself never fails because
    of the durable store. Reads fall through to the fallback when the primary
    has no record, so sessions created during an outage stay reachable.
    """

    def __init__(self, primary: SessionStore, fallback: InMemorySessionStore) -> None:
        self.primary = primary
        self.fallback = fallback

    def _degrade(self, op: str, exc: StoreUnavailable) -> None:
        logger.warning(
            "[SessionStore] Primary store unavailable during %s (%s); using in-process fallback.",
            op,
            exc,
        )

    def create(self, session: Session) -> Session:
        try:
            return self.primary.create(session)
        except StoreUnavailable as exc:
            self._degrade("create", exc)
            return self.fallback.create(session)

    def get(self, session_id: str) -> Optional[Session]:
        try:
            session = self.primary.get(session_id)
        except StoreUnavailable as exc:
            self._degrade("get", exc)
            return self.fallback.get(session_id)
        if session is None:
            return self.fallback.get(session_id)
        return session

    def update(self, session_id: str, updater: SessionUpdater) -> Session:
        try:
            return self.primary.update(session_id, updater)
        except StoreUnavailable as exc:
            self._degrade("update", exc)
            return self.fallback.update(session_id, updater)
        except SessionNotFound:
            # Created while the primary was down.
            return self.fallback.update(session_id, updater)

    def delete(self, session_id: str) -> None:
        try:
            self.primary.delete(session_id)
        except StoreUnavailable as exc:
            self._degrade("delete", exc)
        self.fallback.delete(session_id)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_session_store(settings: Settings) -> SessionStore:
    """
    Build the session store configured in settings.

    - No REDIS_URL      -> InMemorySessionStore
    - REDIS_URL present -> ResilientSessionStore(Redis, in-memory)
    """
    memory = InMemorySessionStore(
        ttl_s=settings.session_ttl_s,
        prune_interval_s=settings.store_prune_interval_s,
    )
    if not settings.redis_url:
        logger.info("[SessionStore] REDIS_URL not set; using in-process store only.")
        return memory

    durable = RedisSessionStore.from_url(
        settings.redis_url,
        socket_timeout_s=settings.redis_socket_timeout_s,
        ttl_s=settings.session_ttl_s,
        key_prefix=settings.redis_key_prefix,
        lock_timeout_s=settings.store_lock_timeout_s,
    )
    if durable.ping():
        logger.info("[SessionStore] Connected to Redis session store.")
    else:
        logger.warning(
            "[SessionStore] Redis not reachable at startup; requests will use "
            "the in-process store until it comes back."
        )
    return ResilientSessionStore(durable, memory)
