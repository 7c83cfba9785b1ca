import threading
import time
from unittest import mock

import pytest
import redis

from hearing.core.config import Settings
from hearing.core.errors import SessionNotFound, StoreUnavailable
from hearing.models.session_model import Session
from hearing.runtime_state import (
    InMemorySessionStore,
    RedisSessionStore,
    ResilientSessionStore,
    build_session_store,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryStore:
    def setup_method(self):
        self.clock = FakeClock()
        self.store = InMemorySessionStore(ttl_s=60, clock=self.clock)
        self.session = self.store.create(Session.new("user-1"))

    def test_get_returns_a_copy(self):
        loaded = self.store.get(self.session.id)
        assert loaded == self.session
        assert loaded is not self.session

    def test_update_applies_and_saves(self):
        updated = self.store.update(self.session.id, lambda s: s.with_answer("Q", "A"))
        assert updated.turn_count == 1
        assert self.store.get(self.session.id).turn_count == 1

    def test_update_unknown_raises(self):
        with pytest.raises(SessionNotFound):
            self.store.update("nope", lambda s: s)

    def test_updater_error_aborts_write(self):
        def boom(_):
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            self.store.update(self.session.id, boom)
        assert self.store.get(self.session.id) == self.session

    def test_expiry_on_access(self):
        self.clock.now += 61
        assert self.store.get(self.session.id) is None
        with pytest.raises(SessionNotFound):
            self.store.update(self.session.id, lambda s: s)

    def test_write_refreshes_ttl(self):
        self.clock.now += 50
        self.store.update(self.session.id, lambda s: s.with_answer("Q", "A"))
        self.clock.now += 50
        assert self.store.get(self.session.id) is not None

    def test_prune_expired(self):
        self.store.create(Session.new("user-2"))
        self.clock.now += 61
        assert self.store.prune_expired() == 2
        assert len(self.store) == 0

    def test_writes_sweep_abandoned_sessions(self):
        store = InMemorySessionStore(ttl_s=10, clock=self.clock, prune_interval_s=60)
        for i in range(100):
            store.create(Session.new(f"user-{i}"))
        self.clock.now += 1000

        store.create(Session.new("late"))

        assert len(store) == 1
        assert store._key_locks == {}

    def test_sweep_waits_for_interval(self):
        store = InMemorySessionStore(ttl_s=10, clock=self.clock, prune_interval_s=60)
        store.create(Session.new("user-1"))
        self.clock.now += 30
        store.create(Session.new("user-2"))
        assert len(store) == 2

    def test_key_locks_released_after_use(self):
        self.store.update(self.session.id, lambda s: s.with_answer("Q", "A"))
        self.store.delete(self.session.id)
        assert self.store._key_locks == {}

    def test_delete_keeps_lock_while_others_wait(self):
        sid = self.session.id
        with self.store._locked(sid):
            entry = self.store._key_locks[sid]
            deleter = threading.Thread(target=self.store.delete, args=(sid,))
            deleter.start()
            for _ in range(500):
                if entry[1] == 2:
                    break
                time.sleep(0.01)
            assert entry[1] == 2
            assert self.store._key_locks[sid] is entry
            assert self.store.get(sid) is not None
        deleter.join(timeout=5)

        assert self.store.get(sid) is None
        assert sid not in self.store._key_locks

    def test_delete_is_idempotent(self):
        self.store.delete(self.session.id)
        self.store.delete(self.session.id)
        assert self.store.get(self.session.id) is None

    def test_concurrent_updates_are_serialized(self):
        store = InMemorySessionStore()
        session = store.create(Session.new("user-1"))
        start = threading.Barrier(8)

        def worker(i):
            start.wait()
            store.update(session.id, lambda s: s.with_answer(f"Q{i}", f"A{i}"))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get(session.id).turn_count == 8


class TestRedisStore:
    def setup_method(self):
        self.client = mock.MagicMock()
        self.store = RedisSessionStore(self.client, ttl_s=3600, key_prefix="t:")
        self.session = Session.new("user-1")

    def test_create_uses_setex(self):
        self.store.create(self.session)
        self.client.setex.assert_called_once_with(
            f"t:session:{self.session.id}", 3600, self.session.model_dump_json()
        )

    def test_get_decodes_record(self):
        self.client.get.return_value = self.session.model_dump_json()
        assert self.store.get(self.session.id) == self.session

    def test_get_missing(self):
        self.client.get.return_value = None
        assert self.store.get("nope") is None

    def test_update_holds_lock(self):
        self.client.get.return_value = self.session.model_dump_json()
        updated = self.store.update(self.session.id, lambda s: s.with_answer("Q", "A"))
        assert updated.turn_count == 1
        self.client.lock.assert_called_once_with(
            f"t:lock:{self.session.id}", timeout=10.0, blocking_timeout=10.0
        )
        key, ttl, raw = self.client.setex.call_args.args
        assert Session.model_validate_json(raw).turn_count == 1

    def test_update_missing_raises_not_found(self):
        self.client.get.return_value = None
        with pytest.raises(SessionNotFound):
            self.store.update("nope", lambda s: s)

    def test_redis_errors_become_store_unavailable(self):
        self.client.get.side_effect = redis.ConnectionError("down")
        with pytest.raises(StoreUnavailable):
            self.store.get(self.session.id)

    def test_ping_failure(self):
        self.client.ping.side_effect = redis.ConnectionError("down")
        assert self.store.ping() is False


class TestResilientStore:
    def setup_method(self):
        self.primary = mock.MagicMock(spec=RedisSessionStore)
        self.fallback = InMemorySessionStore()
        self.store = ResilientSessionStore(self.primary, self.fallback)

    def test_outage_is_served_from_memory(self):
        self.primary.create.side_effect = StoreUnavailable("down")
        self.primary.get.side_effect = StoreUnavailable("down")
        self.primary.update.side_effect = StoreUnavailable("down")

        session = self.store.create(Session.new("user-1"))
        assert self.store.get(session.id) == session
        updated = self.store.update(session.id, lambda s: s.with_answer("Q", "A"))
        assert updated.turn_count == 1

    def test_session_created_during_outage_survives_recovery(self):
        self.primary.create.side_effect = StoreUnavailable("down")
        session = self.store.create(Session.new("user-1"))

        # Redis is back but does not know the session.
        self.primary.get.side_effect = None
        self.primary.get.return_value = None
        self.primary.update.side_effect = SessionNotFound(session.id)

        assert self.store.get(session.id) == session
        assert self.store.update(session.id, lambda s: s.with_answer("Q", "A")).turn_count == 1

    def test_primary_used_when_healthy(self):
        session = Session.new("user-1")
        self.primary.get.return_value = session
        assert self.store.get(session.id) is session
        assert len(self.fallback) == 0


class TestFactory:
    def test_no_redis_url_gives_memory_store(self):
        store = build_session_store(Settings(redis_url=None))
        assert isinstance(store, InMemorySessionStore)

    def test_redis_url_gives_resilient_store(self):
        with mock.patch("hearing.runtime_state.sessions.redis.Redis.from_url") as from_url:
            from_url.return_value.ping.return_value = True
            store = build_session_store(Settings(redis_url="redis://localhost:6379/0"))
        assert isinstance(store, ResilientSessionStore)
        assert isinstance(store.primary, RedisSessionStore)
        assert from_url.call_args.kwargs["decode_responses"] is True
