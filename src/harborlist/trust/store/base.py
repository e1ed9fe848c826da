"""Secret & range store interface.

All mutation is compare-and-swap: range sets on `version`, secret state on
`revision`. Writers that lose the race get VersionConflict and defer.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from harborlist.trust.models import (
    PendingTransition,
    SecretState,
    SyncStatus,
    TrustedRangeSet,
)


class TrustStore(ABC):
    """Durable, versioned storage for edge trust state."""

    @abstractmethod
    def get_range_set(self) -> TrustedRangeSet | None:
        """Committed range set, or None before the first commit."""

    @abstractmethod
    def commit_range_set(self, range_set: TrustedRangeSet, expected_version: int) -> None:
        """Store `range_set` if the stored version equals `expected_version`.

        `range_set.version` must be exactly `expected_version + 1`.

        Raises:
            VersionConflict: if another writer got there first
        """

    @abstractmethod
    def get_pending_transition(self) -> PendingTransition | None: ...

    @abstractmethod
    def put_pending_transition(self, transition: PendingTransition) -> None: ...

    @abstractmethod
    def clear_pending_transition(self) -> None: ...

    @abstractmethod
    def get_secret_state(self) -> SecretState: ...

    @abstractmethod
    def put_secret_state(self, state: SecretState, expected_revision: int) -> SecretState:
        """Store `state` with revision `expected_revision + 1` and return it.

        Raises:
            VersionConflict: if the stored revision differs
        """

    @abstractmethod
    def acquire_lease(self, owner: str, ttl_seconds: int, now: datetime) -> bool:
        """Take or renew the synchronizer lease. False if held by someone else."""

    @abstractmethod
    def release_lease(self, owner: str) -> None: ...

    @abstractmethod
    def get_sync_status(self) -> SyncStatus: ...

    @abstractmethod
    def put_sync_status(self, status: SyncStatus) -> None: ...

    def location(self, record: str) -> str:
        """Human-readable location of a record, shown to operators."""
        return f"{type(self).__name__}:{record}"


def check_next_version(range_set: TrustedRangeSet, expected_version: int) -> None:
    if range_set.version != expected_version + 1:
        raise ValueError(
            f"Range set version must be {expected_version + 1}, got {range_set.version}"
        )
