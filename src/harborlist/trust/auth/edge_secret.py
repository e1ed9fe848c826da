"""Edge secret check for requests arriving through the API layer.

API Gateway resource policies cannot match request headers, so the shared
edge secret is enforced here instead of in the resource policy.
"""

import hmac
import logging
import threading
from typing import Mapping

from cachetools import TTLCache

from harborlist.trust.auth.errors import EdgeSecretMismatch
from harborlist.trust.store import TrustStore

logger = logging.getLogger(__name__)

_KEY = "accepted"


class EdgeSecretGate:
    """Compare the edge-supplied secret header against the accepted secrets."""

    def __init__(self, store: TrustStore, header: str = "x-auth-secret", ttl_seconds: int = 60):
        self._store = store
        self._header = header.lower()
        self._cache: TTLCache[str, tuple[str, ...]] = TTLCache(maxsize=1, ttl=ttl_seconds)
        self._lock = threading.RLock()

    @property
    def header(self) -> str:
        return self._header

    def accepted(self) -> tuple[str, ...]:
        with self._lock:
            values = self._cache.get(_KEY)
            if values is None:
                values = tuple(self._store.get_secret_state().accepted_values())
                self._cache[_KEY] = values
            return values

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    def check(self, source_attributes: Mapping[str, str]) -> None:
        """Raise EdgeSecretMismatch unless the header carries an accepted secret."""
        presented = None
        for name, value in source_attributes.items():
            if name.lower() == self._header:
                presented = value
                break
        if not presented:
            raise EdgeSecretMismatch("Edge secret header missing")

        for candidate in self.accepted():
            if hmac.compare_digest(presented.encode(), candidate.encode()):
                return
        logger.debug("Edge secret did not match any accepted value")
        raise EdgeSecretMismatch()
