"""Read-through cache for allow decisions."""

import hashlib
import threading
import time
from typing import Any

import structlog
from cachetools import TTLCache

from ..models import AuthorizationDecision, DomainId

logger = structlog.get_logger()


class AuthorizationCache:
    """TTL cache for allow decisions keyed by token hash and resolved domain.

    Thread-safe implementation using cachetools. Each entry also carries its
    own deadline so it never outlives the token it was computed from.
    """

    def __init__(self, maxsize: int = 10000, ttl_seconds: int = 300):
        """Initialize the cache.

        Args:
            maxsize: Maximum number of entries
            ttl_seconds: Upper bound on entry lifetime in seconds
        """
        self._ttl_seconds = ttl_seconds
        self._cache: TTLCache[str, tuple[AuthorizationDecision, float]] = TTLCache(
            maxsize=maxsize, ttl=ttl_seconds
        )
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @staticmethod
    def make_key(token: str, domain_id: DomainId) -> str:
        return f"{hashlib.sha256(token.encode()).hexdigest()}:{domain_id.value}"

    def ttl_for(self, expires_at: float, now: float | None = None) -> int:
        """Seconds an allow may be cached: min(configured TTL, token lifetime left)."""
        now = time.time() if now is None else now
        return max(0, min(self._ttl_seconds, int(expires_at - now)))

    def get(self, token: str, domain_id: DomainId) -> AuthorizationDecision | None:
        """Get a cached decision.

        Args:
            token: Raw bearer token
            domain_id: Domain resolved from the request path

        Returns:
            Cached AuthorizationDecision with its remaining TTL, or None
        """
        key = self.make_key(token, domain_id)
        with self._lock:
            entry = self._cache.get(key)
            now = time.monotonic()
            if entry is not None and entry[1] > now:
                self._hits += 1
                logger.debug("Cache hit", domain=domain_id.value, key=key[:16])
                # Time left, not the TTL granted when the entry was stored
                return entry[0].model_copy(update={"cache_ttl": int(entry[1] - now)})
            if entry is not None:
                del self._cache[key]
            self._misses += 1
            return None

    def set(self, token: str, domain_id: DomainId, decision: AuthorizationDecision) -> None:
        """Cache an allow decision for `decision.cache_ttl` seconds.

        Denials and zero-TTL decisions are never cached.
        """
        if not decision.allowed or decision.cache_ttl <= 0:
            return
        key = self.make_key(token, domain_id)
        with self._lock:
            self._cache[key] = (decision, time.monotonic() + decision.cache_ttl)
            logger.debug("Cache set", domain=domain_id.value, key=key[:16])

    def invalidate(self) -> int:
        """Clear the cache and return the number of dropped entries."""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            logger.info("Cache cleared", entries=count)
            return count

    @property
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            hit_rate = self._hits / total if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 3),
            }
