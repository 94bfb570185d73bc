"""
Device-side memory of an in-progress dining session.

A ``PersistedSessionStore`` writes the same record to an ordered list of
key-value backends and reads it back from the first one that still holds a
parseable copy. No operation raises: a failing backend is logged and skipped,
and losing every backend degrades to "no session remembered".
"""
import base64
import json
import logging
import os
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from schemas.table_session import PersistedSession
from utils.config import SESSION_TIMEOUT_HOURS, SESSION_STORAGE_KEY, SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)


class KeyValueBackend:
    name = "backend"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryBackend(KeyValueBackend):
    """Per-tab storage; lost when the tab goes away."""
    name = "memory"

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileBackend(KeyValueBackend):
    """Durable key-value store kept as one JSON object on disk."""
    name = "file"

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _dump(self, data: Dict[str, str]) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


class CookieBackend(KeyValueBackend):
    """
    Cookie-backed storage bound to one request/response pair.

    Reads come from the request's cookie jar (plus anything written during this
    request); writes are emitted as ``Set-Cookie`` on the response. Values are
    base64url-encoded so JSON survives cookie quoting.
    """
    name = "cookie"

    def __init__(
        self,
        cookies: Optional[Mapping[str, str]] = None,
        response=None,
        cookie_name: str = SESSION_COOKIE_NAME,
        max_age: int = SESSION_TIMEOUT_HOURS * 3600,
    ):
        self._jar: Dict[str, Optional[str]] = dict(cookies or {})
        self.response = response
        self.cookie_name = cookie_name
        self.max_age = max_age

    def get(self, key: str) -> Optional[str]:
        encoded = self._jar.get(self.cookie_name)
        if not encoded:
            return None
        return base64.urlsafe_b64decode(encoded.encode("ascii")).decode("utf-8")

    def set(self, key: str, value: str) -> None:
        encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii")
        self._jar[self.cookie_name] = encoded
        if self.response is not None:
            self.response.set_cookie(
                key=self.cookie_name,
                value=encoded,
                max_age=self.max_age,
                path="/",
                samesite="lax",
                httponly=True,
            )

    def delete(self, key: str) -> None:
        self._jar[self.cookie_name] = None
        if self.response is not None:
            self.response.delete_cookie(self.cookie_name, path="/")


class PersistedSessionStore:
    def __init__(
        self,
        backends: List[KeyValueBackend],
        storage_key: str = SESSION_STORAGE_KEY,
        timeout: timedelta = timedelta(hours=SESSION_TIMEOUT_HOURS),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.backends = backends
        self.storage_key = storage_key
        self.timeout = timeout
        self.clock = clock

    def store(self, session: PersistedSession) -> bool:
        """Stamp access/expiry times and write to every backend. True if any write succeeded."""
        now = self.clock()
        stamped = session.model_copy(update={"last_accessed": now, "expires_at": now + self.timeout})
        return self._write(stamped)

    def retrieve(self) -> Optional[PersistedSession]:
        for backend in self.backends:
            try:
                raw = backend.get(self.storage_key)
            except Exception as e:
                logger.warning(f"Failed to read persisted session from {backend.name}: {str(e)}")
                continue
            if not raw:
                continue

            try:
                session = PersistedSession.model_validate_json(raw)
            except (ValidationError, ValueError) as e:
                logger.warning(f"Ignoring unparseable persisted session in {backend.name}: {str(e)}")
                continue

            if self.is_expired(session):
                logger.info(f"Persisted session {session.session_id} has expired, clearing")
                self.clear()
                return None
            return session
        return None

    def clear(self) -> bool:
        cleared = False
        for backend in self.backends:
            try:
                backend.delete(self.storage_key)
                cleared = True
            except Exception as e:
                logger.warning(f"Failed to clear persisted session from {backend.name}: {str(e)}")
        return cleared

    def update_last_accessed(self, session: Optional[PersistedSession] = None) -> bool:
        """Refresh last_accessed without extending expires_at."""
        current = session or self.retrieve()
        if current is None:
            return False
        return self._write(current.model_copy(update={"last_accessed": self.clock()}))

    def is_expired(self, session: PersistedSession) -> bool:
        now = self.clock()
        if session.expires_at is not None:
            return now > session.expires_at
        return now > session.last_accessed + self.timeout

    def session_info(self) -> Optional[dict]:
        session = self.retrieve()
        if session is None:
            return None
        return {
            "session_id": session.session_id,
            "table_id": session.table_id,
            "restaurant_id": session.restaurant_id,
        }

    def _write(self, session: PersistedSession) -> bool:
        payload = session.model_dump_json()
        stored = False
        for backend in self.backends:
            try:
                backend.set(self.storage_key, payload)
                stored = True
            except Exception as e:
                logger.warning(f"Failed to write persisted session to {backend.name}: {str(e)}")
        if not stored:
            logger.error(f"Persisted session {session.session_id} could not be written to any backend")
        return stored
