"""App-credential tokens: derivation and the per-client cache.

ZenTao accepts ``code``, ``time`` and ``token`` query parameters where
``token = md5(code + key + time)``. A token is honoured for 30 seconds; the
cache keeps one for half of that to absorb clock and network skew.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass

from .clock import TimestampSource

UPSTREAM_TOKEN_TTL_S = 30
TOKEN_CACHE_S = UPSTREAM_TOKEN_TTL_S // 2
PROACTIVE_REFRESH_RATIO = 0.8


def generate_token(code: str, key: str, timestamp: int) -> str:
    raw = f"{code}{key}{int(timestamp)}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def credentials_fingerprint(code: str, key: str) -> str:
    return hashlib.sha256(f"{code}\0{key}".encode("utf-8")).hexdigest()


def token_preview(token: str, keep: int = 8) -> str:
    if len(token) <= keep:
        return token
    return token[:keep] + "..."


@dataclass(frozen=True)
class CachedToken:
    token: str = ""
    timestamp: int = 0
    signer: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.token or self.timestamp <= 0

    def age(self, now: int) -> int:
        return now - self.timestamp


class TokenCache:
    def __init__(
        self,
        timestamps: TimestampSource,
        *,
        cache_s: int = TOKEN_CACHE_S,
        logger: logging.Logger | None = None,
    ) -> None:
        self._timestamps = timestamps
        self._cache_s = cache_s
        self._log = logger or logging.getLogger("zentao_client.tokens")
        self._lock = threading.Lock()
        self._cached = CachedToken()

    @property
    def cache_s(self) -> int:
        return self._cache_s

    def snapshot(self) -> CachedToken:
        with self._lock:
            return self._cached

    def _near_expiry(self, age: int) -> bool:
        return age >= self._cache_s * PROACTIVE_REFRESH_RATIO

    def get(self, code: str, key: str, *, refresh_early: bool = False) -> CachedToken:
        """Return the cached token, regenerating it when absent or stale.

        A token signed with other credentials is never served. A token whose
        age equals the cache duration is still served. With
        ``refresh_early`` a token that is close to expiry is replaced too, in
        the same critical section as the lookup.
        """
        signer = credentials_fingerprint(code, key)
        with self._lock:
            cached = self._cached
            if not cached.is_empty and cached.signer != signer:
                self._log.info("cached token signed with other credentials, regenerating")
            elif not cached.is_empty:
                age = cached.age(self._timestamps.now())
                if age <= self._cache_s and not (refresh_early and self._near_expiry(age)):
                    self._log.debug("token cache hit age=%ss remaining=%ss", age, self._cache_s - age)
                    return cached
                self._log.info("cached token stale or near expiry age=%ss, regenerating", age)

            timestamp = self._timestamps.next()
            fresh = CachedToken(token=generate_token(code, key, timestamp), timestamp=timestamp, signer=signer)
            self._cached = fresh
            self._log.debug("generated token %s time=%s", token_preview(fresh.token), timestamp)
            return fresh

    def close_to_expiry(self) -> bool:
        with self._lock:
            cached = self._cached
            if cached.is_empty:
                return True
            age = cached.age(self._timestamps.now())
        return self._near_expiry(age)

    def invalidate(self) -> None:
        with self._lock:
            if not self._cached.is_empty:
                self._log.info("dropping cached token time=%s", self._cached.timestamp)
            self._cached = CachedToken()
