"""Core domain models for the trust boundary."""

import ipaddress
import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_cidrs(values: Iterable[str], version: int | None = None) -> list[str]:
    """Parse, de-duplicate and sort CIDR strings.

    Raises ValueError on anything that is not a network of the requested
    IP version.
    """
    networks = set()
    for raw in values:
        text = raw.strip()
        if not text:
            continue
        network = ipaddress.ip_network(text, strict=True)
        if version is not None and network.version != version:
            raise ValueError(f"{text} is not an IPv{version} network")
        networks.add(network)
    return [str(n) for n in sorted(networks, key=lambda n: (n.version, n))]


# --- Identity domains ---


class DomainId(str, Enum):
    """The two isolated credential populations."""

    CUSTOMER = "customer"
    STAFF = "staff"


class ClaimType(str, Enum):
    STRING = "string"
    LIST = "list"
    INTEGER = "integer"
    BOOLEAN = "boolean"


class ClaimSpec(BaseModel):
    """A custom claim a domain's tokens must (or may) carry."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Claim name, e.g. 'custom:customer_type'")
    type: ClaimType = Field(default=ClaimType.STRING)
    required: bool = Field(default=True)
    equals: Any = Field(default=None, description="Exact value the claim must hold")


class IdentityDomain(BaseModel):
    """One isolated tenant population and the key material that vouches for it."""

    model_config = ConfigDict(frozen=True)

    domain_id: DomainId
    issuer: str = Field(..., description="Expected iss claim")
    jwks_uri: str | None = Field(None, description="Derived from issuer when unset")
    audience: str | None = Field(None, description="Expected aud/client_id, optional")
    algorithms: list[str] = Field(default_factory=lambda: ["RS256"])
    claim_schema: list[ClaimSpec] = Field(default_factory=list)
    path_prefixes: list[str] = Field(..., min_length=1)

    # Session and role mapping
    max_session_seconds: int | None = Field(
        None, description="Upper bound on now - iat regardless of exp"
    )
    groups_claim: str = "cognito:groups"
    email_claim: str = "email"
    role_claim: str | None = Field(None, description="Claim holding the role/tier")
    role_from_groups: bool = Field(
        default=False, description="Pick the first role_permissions key found in groups"
    )
    default_role: str | None = None
    role_permissions: dict[str, list[str]] = Field(default_factory=dict)
    permissions_claim: str | None = Field(
        None, description="Claim holding a JSON list of explicit permissions"
    )

    @field_validator("path_prefixes")
    @classmethod
    def _normalize_prefixes(cls, value: list[str]) -> list[str]:
        result = []
        for prefix in value:
            p = prefix.strip()
            if p.endswith("/*"):
                p = p[:-2]
            if not p.startswith("/"):
                raise ValueError(f"path prefix must start with '/': {prefix!r}")
            if len(p) > 1:
                p = p.rstrip("/")
            result.append(p)
        return result

    @property
    def resolved_jwks_uri(self) -> str:
        """JWKS URI, deriving the Cognito well-known location from the issuer."""
        if self.jwks_uri:
            return self.jwks_uri
        return f"{self.issuer.rstrip('/')}/.well-known/jwks.json"


class AuthorizationContext(BaseModel):
    """Result of a successful token validation."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    domain_id: DomainId
    groups: list[str] = Field(default_factory=list)
    issued_at: datetime
    expires_at: datetime
    role: str | None = None
    permissions: list[str] = Field(default_factory=list)
    email: str | None = None
    raw_claims: dict[str, Any] = Field(default_factory=dict)


class DenialReason(str, Enum):
    """Internal reason codes. Never surfaced to the end client."""

    NO_DOMAIN_FOR_PATH = "no_domain_for_path"
    DOMAIN_MISMATCH = "domain_mismatch"
    TOKEN_MALFORMED = "token_malformed"
    SIGNATURE_INVALID = "signature_invalid"
    TOKEN_EXPIRED = "token_expired"
    CLAIM_SCHEMA_MISMATCH = "claim_schema_mismatch"
    VERIFICATION_TIMEOUT = "verification_timeout"
    TOKEN_REVOKED = "token_revoked"
    EDGE_SECRET_MISMATCH = "edge_secret_mismatch"
    # A dependency (key source, trust store) failed; still a plain deny
    AUTHORIZER_ERROR = "authorizer_error"


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class AuthorizerRequest(BaseModel):
    """Input of one authorizer invocation."""

    path: str
    bearer_token: str | None = None
    source_attributes: dict[str, str] = Field(default_factory=dict)


class AuthorizationDecision(BaseModel):
    """Authorizer output. `reason` is for logs and metrics only."""

    effect: Effect
    context: AuthorizationContext | None = None
    cache_ttl: int = 0
    reason: DenialReason | None = None
    domain_id: DomainId | None = None
    cached: bool = False

    @property
    def allowed(self) -> bool:
        return self.effect is Effect.ALLOW

    @classmethod
    def allow(cls, context: AuthorizationContext, cache_ttl: int) -> "AuthorizationDecision":
        return cls(
            effect=Effect.ALLOW,
            context=context,
            cache_ttl=cache_ttl,
            domain_id=context.domain_id,
        )

    @classmethod
    def deny(
        cls, reason: DenialReason, domain_id: DomainId | None = None
    ) -> "AuthorizationDecision":
        return cls(effect=Effect.DENY, reason=reason, domain_id=domain_id)


# --- Edge trust ---


class TrustedRangeSet(BaseModel):
    """The edge provider's published network ranges."""

    version: int = Field(default=0, ge=0)
    ipv4_ranges: list[str] = Field(default_factory=list)
    ipv6_ranges: list[str] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=utcnow)
    source: str = "unknown"

    @field_validator("ipv4_ranges")
    @classmethod
    def _canonical_v4(cls, value: list[str]) -> list[str]:
        return canonical_cidrs(value, version=4)

    @field_validator("ipv6_ranges")
    @classmethod
    def _canonical_v6(cls, value: list[str]) -> list[str]:
        return canonical_cidrs(value, version=6)

    @property
    def all_ranges(self) -> list[str]:
        return [*self.ipv4_ranges, *self.ipv6_ranges]

    def contains(self, address: str) -> bool:
        ip = ipaddress.ip_address(address)
        return any(ip in ipaddress.ip_network(r) for r in self.all_ranges)


class EdgeSecret(BaseModel):
    """Shared value the edge presents to the origin."""

    value: str = Field(..., min_length=32)
    created_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=1, ge=1)

    @classmethod
    def generate(cls, version: int, created_at: datetime | None = None) -> "EdgeSecret":
        # 32 random bytes, hex encoded
        return cls(
            value=secrets.token_hex(32),
            version=version,
            created_at=created_at or utcnow(),
        )


class SecretState(BaseModel):
    """Active secret plus whatever is still honoured around a rotation."""

    revision: int = Field(default=0, ge=0, description="Bumped on every write")
    active: EdgeSecret | None = None
    pending: EdgeSecret | None = None
    previous: EdgeSecret | None = None
    previous_expires_at: datetime | None = None

    @property
    def version(self) -> int:
        return self.active.version if self.active else 0

    def policy_values(self) -> list[str]:
        """Secrets written into origin policies: active, plus pending mid-rotation."""
        return [s.value for s in (self.active, self.pending) if s is not None]

    def accepted_values(self, now: datetime | None = None) -> list[str]:
        """Secrets the authorizer accepts right now, active first.

        Also honours the previous secret until `previous_expires_at`.
        """
        now = now or utcnow()
        values = []
        if self.active:
            values.append(self.active.value)
        if self.pending:
            values.append(self.pending.value)
        if (
            self.previous
            and self.previous_expires_at is not None
            and now < self.previous_expires_at
        ):
            values.append(self.previous.value)
        return values


class OriginKind(str, Enum):
    OBJECT_STORE = "object_store"
    API_LAYER = "api_layer"


class OriginAccessPolicy(BaseModel):
    """The abstract policy a publisher materialises on one origin."""

    model_config = ConfigDict(frozen=True)

    applies_to: OriginKind
    allowed_ranges: list[str]
    required_secrets: list[str] = Field(default_factory=list)
    applied_version: int = 0


class PendingTransition(BaseModel):
    """A range transition that has started but not been committed."""

    target: TrustedRangeSet
    base_version: int
    grace_until: datetime
    origins_in_grace: list[OriginKind] = Field(default_factory=list)
    origins_narrowed: list[OriginKind] = Field(default_factory=list)


class Lease(BaseModel):
    owner: str
    expires_at: datetime


class SyncStatus(BaseModel):
    """Bookkeeping for alerting on a stuck synchronizer."""

    consecutive_failures: int = 0
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    last_outcome: str | None = None
    last_error: str | None = None


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    PUBLISHING_GRACE = "publishing_grace"
    NARROWING = "narrowing"


class SyncOutcome(str, Enum):
    UNCHANGED = "unchanged"
    APPLIED = "applied"
    PARTIAL = "partial"
    FETCH_FAILED = "fetch_failed"
    LEASE_LOST = "lease_lost"
    DEFERRED = "deferred"
    BOOTSTRAPPED = "bootstrapped"
    ROTATED = "rotated"


class SyncReport(BaseModel):
    """What one synchronizer run did."""

    outcome: SyncOutcome
    states: list[SyncState] = Field(default_factory=list)
    version_before: int = 0
    version_after: int = 0
    origin_results: dict[str, bool] = Field(default_factory=dict)
    error: str | None = None


class AuditRecord(BaseModel):
    """Audit log entry for authorizer decisions."""

    timestamp: datetime = Field(default_factory=utcnow)
    request_id: str = Field(..., description="Unique request identifier")
    path: str
    effect: Effect
    domain_id: DomainId | None = None
    reason: DenialReason | None = None
    subject_id: str | None = None
    latency_ms: float = Field(..., description="Evaluation latency in milliseconds")
    cached: bool = Field(default=False, description="Whether result was from cache")
