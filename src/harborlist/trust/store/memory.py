"""In-process trust store for local development and tests."""

import threading
from datetime import datetime, timedelta

from harborlist.trust.errors import VersionConflict
from harborlist.trust.models import (
    Lease,
    PendingTransition,
    SecretState,
    SyncStatus,
    TrustedRangeSet,
)
from harborlist.trust.store.base import TrustStore, check_next_version


class InMemoryTrustStore(TrustStore):
    """Thread-safe store keeping deep copies of every record."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._range_set: TrustedRangeSet | None = None
        self._pending: PendingTransition | None = None
        self._secrets = SecretState()
        self._lease: Lease | None = None
        self._status = SyncStatus()

    def get_range_set(self) -> TrustedRangeSet | None:
        with self._lock:
            return self._range_set.model_copy(deep=True) if self._range_set else None

    def commit_range_set(self, range_set: TrustedRangeSet, expected_version: int) -> None:
        check_next_version(range_set, expected_version)
        with self._lock:
            actual = self._range_set.version if self._range_set else 0
            if actual != expected_version:
                raise VersionConflict(
                    "Range set version changed",
                    expected=expected_version,
                    actual=actual,
                )
            self._range_set = range_set.model_copy(deep=True)

    def get_pending_transition(self) -> PendingTransition | None:
        with self._lock:
            return self._pending.model_copy(deep=True) if self._pending else None

    def put_pending_transition(self, transition: PendingTransition) -> None:
        with self._lock:
            self._pending = transition.model_copy(deep=True)

    def clear_pending_transition(self) -> None:
        with self._lock:
            self._pending = None

    def get_secret_state(self) -> SecretState:
        with self._lock:
            return self._secrets.model_copy(deep=True)

    def put_secret_state(self, state: SecretState, expected_revision: int) -> SecretState:
        with self._lock:
            if self._secrets.revision != expected_revision:
                raise VersionConflict(
                    "Secret state changed",
                    expected=expected_revision,
                    actual=self._secrets.revision,
                )
            stored = state.model_copy(deep=True, update={"revision": expected_revision + 1})
            self._secrets = stored
            return stored.model_copy(deep=True)

    def acquire_lease(self, owner: str, ttl_seconds: int, now: datetime) -> bool:
        with self._lock:
            lease = self._lease
            if lease and lease.owner != owner and lease.expires_at > now:
                return False
            self._lease = Lease(owner=owner, expires_at=now + timedelta(seconds=ttl_seconds))
            return True

    def release_lease(self, owner: str) -> None:
        with self._lock:
            if self._lease and self._lease.owner == owner:
                self._lease = None

    def get_sync_status(self) -> SyncStatus:
        with self._lock:
            return self._status.model_copy(deep=True)

    def put_sync_status(self, status: SyncStatus) -> None:
        with self._lock:
            self._status = status.model_copy(deep=True)

    def location(self, record: str) -> str:
        return f"memory://{record}"
