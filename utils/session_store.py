"""
Per-session key/value storage.

Each authenticated (or pre-authenticated) session gets its own `SessionStore`
bound to a session id. Values must be JSON-serializable so the Redis backend
can hold them. Uses Redis if REDIS_URL is present; otherwise in-memory.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import threading
import time
from typing import Any, Optional

import redis


logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "86400"))


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


class SessionStore:
    """Key/value view over a single session."""

    def __init__(self, backend, session_id: str):
        self.backend = backend
        self.session_id = session_id

    def get(self, key: str, default: Any = None) -> Any:
        return self.backend.read(self.session_id, key, default)

    def set(self, key: str, value: Any) -> None:
        self.backend.write(self.session_id, key, value)


class MemorySessionBackend:
    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}
        self._touched: dict[str, float] = {}
        # Request threads and the purge job share these dicts.
        self._lock = threading.Lock()

    def session(self, session_id: str) -> SessionStore:
        return SessionStore(self, session_id)

    def read(self, session_id: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(session_id, {}).get(key, default)

    def write(self, session_id: str, key: str, value: Any) -> None:
        with self._lock:
            self._data.setdefault(session_id, {})[key] = value
            self._touched[session_id] = time.time()

    def purge_idle(self, max_idle_seconds: int = SESSION_TTL_SECONDS, now: Optional[float] = None) -> int:
        cutoff = (time.time() if now is None else now) - max_idle_seconds
        with self._lock:
            stale = [sid for sid, ts in self._touched.items() if ts < cutoff]
            for sid in stale:
                self._data.pop(sid, None)
                self._touched.pop(sid, None)
        return len(stale)


class RedisSessionBackend:
    def __init__(self, client: "redis.Redis", ttl_seconds: int = SESSION_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"session:{session_id}"

    def session(self, session_id: str) -> SessionStore:
        return SessionStore(self, session_id)

    def read(self, session_id: str, key: str, default: Any = None) -> Any:
        raw = self.client.hget(self._key(session_id), key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable session value %s for session %s", key, session_id[:6])
            return default

    def write(self, session_id: str, key: str, value: Any) -> None:
        name = self._key(session_id)
        pipe = self.client.pipeline()
        pipe.hset(name, key, json.dumps(value))
        pipe.expire(name, self.ttl_seconds)
        pipe.execute()

    def purge_idle(self, max_idle_seconds: int = SESSION_TTL_SECONDS, now: Optional[float] = None) -> int:
        # Redis expires session hashes on its own.
        return 0


_backend = None


def get_session_backend():
    global _backend
    if _backend is None:
        url = os.getenv("REDIS_URL")
        if url:
            _backend = RedisSessionBackend(redis.Redis.from_url(url, decode_responses=True))
            logger.info("Session store: redis")
        else:
            _backend = MemorySessionBackend()
            logger.info("Session store: in-memory")
    return _backend
