"""Synchronizer, store and publisher errors."""


class TrustSyncError(Exception):
    """Base exception for origin trust synchronization."""

    def __init__(self, message: str, origin: str | None = None):
        super().__init__(message)
        self.origin = origin


class FetchFailed(TrustSyncError):
    """The edge provider's range list could not be fetched or parsed."""


class PolicyApplyFailed(TrustSyncError):
    """An origin did not confirm the intended policy."""


class LeaseLost(TrustSyncError):
    """Another synchronizer instance holds the lease."""


class VersionConflict(TrustSyncError):
    """A compare-and-swap saw a different version than expected."""

    def __init__(self, message: str, expected: int | None = None, actual: int | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual
