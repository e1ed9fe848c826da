"""Data models."""

from .core import (
    AuditRecord,
    AuthorizationContext,
    AuthorizationDecision,
    AuthorizerRequest,
    ClaimSpec,
    ClaimType,
    DenialReason,
    DomainId,
    EdgeSecret,
    Effect,
    IdentityDomain,
    Lease,
    OriginAccessPolicy,
    OriginKind,
    PendingTransition,
    SecretState,
    SyncOutcome,
    SyncReport,
    SyncState,
    SyncStatus,
    TrustedRangeSet,
    canonical_cidrs,
    utcnow,
)
from .requests import (
    AuthorizeRequest,
    AuthorizeResponse,
    HealthResponse,
    RangeSummary,
    SyncStatusResponse,
)

__all__ = [
    "AuditRecord",
    "AuthorizationContext",
    "AuthorizationDecision",
    "AuthorizerRequest",
    "AuthorizeRequest",
    "AuthorizeResponse",
    "ClaimSpec",
    "ClaimType",
    "DenialReason",
    "DomainId",
    "EdgeSecret",
    "Effect",
    "HealthResponse",
    "IdentityDomain",
    "Lease",
    "OriginAccessPolicy",
    "OriginKind",
    "PendingTransition",
    "RangeSummary",
    "SecretState",
    "SyncOutcome",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    "SyncStatusResponse",
    "TrustedRangeSet",
    "canonical_cidrs",
    "utcnow",
]
