import importlib

import pytest


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def sessions(fresh_db):
    import cinelog_rec.sessions as sessions

    return importlib.reload(sessions)


def test_get_creates_empty_session(sessions):
    store = sessions.SessionStore(clock=FakeClock())

    session = store.get("alice", "s1")

    assert session.messages == []
    assert ("alice", "s1") in store
    assert store.get("alice", "s1") is session


def test_save_persists_last_messages_and_reloads_after_expiry(sessions):
    clock = FakeClock()
    store = sessions.SessionStore(ttl_seconds=60, clock=clock)
    session = store.get("alice")
    for i in range(25):
        session.add_message("user" if i % 2 == 0 else "assistant", f"message {i}")
    store.save(session)

    clock.advance(61)
    assert ("alice", "default") not in store

    reloaded = store.get("alice")

    assert reloaded is not session
    assert len(reloaded.messages) == 20
    assert reloaded.messages[0].content == "message 5"
    assert reloaded.messages[-1].role == "user"


def test_access_refreshes_ttl(sessions):
    clock = FakeClock()
    store = sessions.SessionStore(ttl_seconds=60, clock=clock)
    session = store.get("alice")

    clock.advance(50)
    store.get("alice")
    clock.advance(50)

    assert store.get("alice") is session


def test_lru_eviction_beyond_max_entries(sessions):
    clock = FakeClock()
    store = sessions.SessionStore(max_entries=2, clock=clock)
    store.get("a")
    store.get("b")
    store.get("a")
    store.get("c")

    assert len(store) == 2
    assert ("a", "default") in store
    assert ("b", "default") not in store


def test_evict_expired(sessions):
    clock = FakeClock()
    store = sessions.SessionStore(ttl_seconds=10, clock=clock)
    store.get("a")
    clock.advance(5)
    store.get("b")
    clock.advance(6)

    assert store.evict_expired() == 1
    assert len(store) == 1


def test_clear_removes_memory_and_durable_copy(sessions, fresh_db):
    store = sessions.SessionStore(clock=FakeClock())
    session = store.get("alice", "s1")
    session.add_message("user", "hi")
    store.save(session)

    store.clear("alice", "s1")

    assert fresh_db.load_conversation("alice", "s1") is None
    assert store.get("alice", "s1").messages == []


def test_history_limit(sessions):
    store = sessions.SessionStore(clock=FakeClock())
    session = store.get("alice")
    for text in ("one", "two", "three"):
        session.add_message("user", text)

    assert [m.content for m in store.history("alice", limit=2)] == ["two", "three"]
    assert len(store.history("alice")) == 3


def test_malformed_stored_messages_are_dropped(sessions, fresh_db):
    fresh_db.save_conversation("alice", "default", [
        {"role": "user", "content": "kept"},
        {"role": "narrator", "content": "dropped"},
        {"content": "no role"},
    ])

    session = sessions.SessionStore(clock=FakeClock()).get("alice")

    assert [m.content for m in session.messages] == ["kept"]


def test_invalid_store_settings(sessions):
    with pytest.raises(ValueError):
        sessions.SessionStore(ttl_seconds=0)
    with pytest.raises(ValueError):
        sessions.SessionStore(max_entries=0)
    with pytest.raises(ValueError):
        sessions.ChatMessage(role="system", content="x")
