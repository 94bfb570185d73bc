"""Persisted session store tests."""

import base64
from datetime import timedelta

from schemas.table_session import PersistedSession
from services.session_store import (
    PersistedSessionStore,
    MemoryBackend,
    JsonFileBackend,
    CookieBackend,
    KeyValueBackend,
)


class BrokenBackend(KeyValueBackend):
    name = "broken"

    def get(self, key):
        raise OSError("storage unavailable")

    def set(self, key, value):
        raise OSError("quota exceeded")

    def delete(self, key):
        raise OSError("storage unavailable")


class RecordingResponse:
    def __init__(self):
        self.cookies = {}
        self.deleted = []

    def set_cookie(self, key, value, **kwargs):
        self.cookies[key] = (value, kwargs)

    def delete_cookie(self, key, **kwargs):
        self.deleted.append(key)


def make_session(clock, **overrides) -> PersistedSession:
    fields = dict(
        session_id="sess-1",
        table_id=5,
        restaurant_id=1,
        customer_name="Asha",
        session_token="token-abc",
        created_at=clock(),
        last_accessed=clock(),
    )
    fields.update(overrides)
    return PersistedSession(**fields)


class TestStoreAndRetrieve:
    def test_round_trip_stamps_expiry(self, clock):
        store = PersistedSessionStore([MemoryBackend()], clock=clock)
        assert store.store(make_session(clock))

        restored = store.retrieve()
        assert restored.session_id == "sess-1"
        assert restored.session_token == "token-abc"
        assert restored.expires_at == clock() + timedelta(hours=24)

    def test_nothing_stored(self):
        store = PersistedSessionStore([MemoryBackend()])
        assert store.retrieve() is None
        assert store.session_info() is None

    def test_session_info_exposes_identifiers_only(self, clock):
        store = PersistedSessionStore([MemoryBackend()], clock=clock)
        store.store(make_session(clock))
        assert store.session_info() == {"session_id": "sess-1", "table_id": 5, "restaurant_id": 1}

    def test_expired_session_is_cleared(self, clock):
        backend = MemoryBackend()
        store = PersistedSessionStore([backend], clock=clock)
        store.store(make_session(clock))

        clock.advance(hours=24, seconds=1)
        assert store.retrieve() is None
        assert backend.get(store.storage_key) is None

    def test_not_expired_at_boundary(self, clock):
        store = PersistedSessionStore([MemoryBackend()], clock=clock)
        store.store(make_session(clock))
        clock.advance(hours=24)
        assert store.retrieve() is not None

    def test_clear(self, clock):
        store = PersistedSessionStore([MemoryBackend()], clock=clock)
        store.store(make_session(clock))
        assert store.clear()
        assert store.retrieve() is None

    def test_unparseable_record_is_ignored(self):
        backend = MemoryBackend()
        backend.set("qr_restaurant_session", "{not json")
        store = PersistedSessionStore([backend])
        assert store.retrieve() is None


class TestLastAccessed:
    def test_update_last_accessed_keeps_expiry(self, clock):
        store = PersistedSessionStore([MemoryBackend()], clock=clock)
        store.store(make_session(clock))
        expires_at = store.retrieve().expires_at

        clock.advance(hours=2)
        assert store.update_last_accessed()
        restored = store.retrieve()
        assert restored.last_accessed == clock()
        assert restored.expires_at == expires_at

    def test_update_last_accessed_without_session(self):
        store = PersistedSessionStore([MemoryBackend()])
        assert store.update_last_accessed() is False


class TestBackendFailures:
    def test_failing_backend_is_skipped(self, clock):
        memory = MemoryBackend()
        store = PersistedSessionStore([BrokenBackend(), memory], clock=clock)

        assert store.store(make_session(clock))
        assert store.retrieve().session_id == "sess-1"
        assert store.clear()

    def test_all_backends_failing_never_raises(self, clock):
        store = PersistedSessionStore([BrokenBackend()], clock=clock)
        assert store.store(make_session(clock)) is False
        assert store.retrieve() is None
        assert store.clear() is False

    def test_first_readable_backend_wins(self, clock):
        first, second = MemoryBackend(), MemoryBackend()
        PersistedSessionStore([second], clock=clock).store(make_session(clock, session_id="older"))
        PersistedSessionStore([first], clock=clock).store(make_session(clock, session_id="newer"))

        store = PersistedSessionStore([first, second], clock=clock)
        assert store.retrieve().session_id == "newer"


class TestJsonFileBackend:
    def test_survives_a_new_store_instance(self, clock, tmp_path):
        path = str(tmp_path / "sessions.json")
        PersistedSessionStore([JsonFileBackend(path)], clock=clock).store(make_session(clock))

        reopened = PersistedSessionStore([JsonFileBackend(path)], clock=clock)
        assert reopened.retrieve().session_id == "sess-1"

    def test_missing_file_reads_as_empty(self, tmp_path):
        backend = JsonFileBackend(str(tmp_path / "absent.json"))
        assert backend.get("anything") is None
        backend.delete("anything")


class TestCookieBackend:
    def test_write_sets_encoded_cookie(self, clock):
        response = RecordingResponse()
        store = PersistedSessionStore([CookieBackend({}, response)], clock=clock)
        store.store(make_session(clock))

        value, options = response.cookies["qr_session"]
        decoded = base64.urlsafe_b64decode(value.encode("ascii")).decode("utf-8")
        assert PersistedSession.model_validate_json(decoded).session_id == "sess-1"
        assert options["httponly"] is True
        assert options["samesite"] == "lax"

    def test_reads_from_request_cookies(self, clock):
        writer = CookieBackend({}, RecordingResponse())
        PersistedSessionStore([writer], clock=clock).store(make_session(clock))
        cookie_value = writer._jar["qr_session"]

        reader = PersistedSessionStore([CookieBackend({"qr_session": cookie_value})], clock=clock)
        assert reader.retrieve().session_token == "token-abc"

    def test_clear_deletes_cookie(self, clock):
        response = RecordingResponse()
        store = PersistedSessionStore([CookieBackend({}, response)], clock=clock)
        store.store(make_session(clock))
        store.clear()

        assert response.deleted == ["qr_session"]
        assert store.retrieve() is None

    def test_garbage_cookie_is_ignored(self):
        store = PersistedSessionStore([CookieBackend({"qr_session": "%%%not-base64"})])
        assert store.retrieve() is None
