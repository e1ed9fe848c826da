"""Pytest configuration and fixtures."""

import time
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from harborlist.trust.audit import AuditLogger
from harborlist.trust.auth import DomainRegistry, DomainVerifier
from harborlist.trust.authorizer import AuthorizationCache, TokenAuthorizer
from harborlist.trust.models import DomainId, OriginKind, TrustedRangeSet
from harborlist.trust.publisher import InMemoryPolicyClient, OriginTarget, PolicyPublisher
from harborlist.trust.store import InMemoryTrustStore
from harborlist.trust.sync import OriginTrustSynchronizer

CUSTOMER_ISSUER = "https://cognito-idp.us-east-1.amazonaws.com/us-east-1_customer"
STAFF_ISSUER = "https://cognito-idp.us-east-1.amazonaws.com/us-east-1_staff"

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

RANGES_V1 = TrustedRangeSet(
    ipv4_ranges=["173.245.48.0/20", "103.21.244.0/22"],
    ipv6_ranges=["2400:cb00::/32"],
    source="cloudflare",
)

# 103.21.244.0/22 withdrawn, 104.16.0.0/13 added
RANGES_V2 = TrustedRangeSet(
    ipv4_ranges=["173.245.48.0/20", "104.16.0.0/13"],
    ipv6_ranges=["2400:cb00::/32"],
    source="cloudflare",
)

RANGES_V3 = TrustedRangeSet(
    ipv4_ranges=["173.245.48.0/20", "104.16.0.0/13", "141.101.64.0/18"],
    ipv6_ranges=["2400:cb00::/32", "2606:4700::/32"],
    source="cloudflare",
)


def registry_data() -> dict:
    """Two-domain registry definition used across tests."""
    return {
        "domains": [
            {
                "domain_id": "customer",
                "issuer": CUSTOMER_ISSUER,
                "path_prefixes": ["/api/customer"],
                "claim_schema": [
                    {"name": "token_use", "equals": "access"},
                    {"name": "custom:customer_type"},
                ],
                "role_claim": "custom:customer_type",
                "default_role": "individual",
                "role_permissions": {
                    "individual": ["view_listings", "create_inquiry"],
                    "dealer": ["view_listings", "create_listing", "manage_inventory"],
                    "premium": ["view_listings", "create_listing", "premium_analytics"],
                },
            },
            {
                "domain_id": "staff",
                "issuer": STAFF_ISSUER,
                "path_prefixes": ["/api/admin"],
                "max_session_seconds": 28800,
                "claim_schema": [
                    {"name": "token_use", "equals": "access"},
                    {"name": "cognito:groups", "type": "list"},
                ],
                "role_from_groups": True,
                "permissions_claim": "custom:permissions",
                "role_permissions": {
                    "super_admin": ["user_management", "system_config", "financial_access"],
                    "admin": ["user_management", "system_config"],
                    "manager": ["user_management", "analytics_view"],
                    "team_member": ["analytics_view"],
                },
            },
        ]
    }


class _Key:
    def __init__(self, key):
        self.key = key


class FakeJWKS:
    """Key source returning one public key, counting lookups."""

    def __init__(self, public_key):
        self._public_key = public_key
        self.calls = 0

    def get_signing_key(self, token: str):
        self.calls += 1
        return _Key(self._public_key)


@pytest.fixture(scope="session")
def signing_keys() -> dict:
    """One RSA key pair per identity domain."""
    return {
        DomainId.CUSTOMER: rsa.generate_private_key(public_exponent=65537, key_size=2048),
        DomainId.STAFF: rsa.generate_private_key(public_exponent=65537, key_size=2048),
    }


@pytest.fixture
def make_token(signing_keys):
    """Build a signed access token for a domain.

    Keyword arguments override or add claims; pass a claim as None to drop it.
    """

    def _make(domain: DomainId = DomainId.CUSTOMER, **claims) -> str:
        now = int(time.time())
        if domain is DomainId.CUSTOMER:
            payload = {
                "sub": "cust-0001",
                "iss": CUSTOMER_ISSUER,
                "token_use": "access",
                "custom:customer_type": "dealer",
                "email": "dealer@harborlist.test",
            }
        else:
            payload = {
                "sub": "staff-0001",
                "iss": STAFF_ISSUER,
                "token_use": "access",
                "cognito:groups": ["admin"],
                "email": "ops@harborlist.test",
            }
        payload.update({"iat": now, "exp": now + 3600, "jti": str(uuid.uuid4())})
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        return jwt.encode(
            payload,
            signing_keys[domain],
            algorithm="RS256",
            headers={"kid": f"{domain.value}-key-1"},
        )

    return _make


@pytest.fixture
def registry() -> DomainRegistry:
    return DomainRegistry.from_dict(registry_data())


@pytest.fixture
def jwks(signing_keys) -> dict:
    return {d: FakeJWKS(key.public_key()) for d, key in signing_keys.items()}


@pytest.fixture
def verifiers(registry, jwks) -> dict:
    return {d: DomainVerifier(registry.get(d), jwks[d]) for d in registry.domain_ids}


@pytest.fixture
def authorizer(registry, verifiers) -> TokenAuthorizer:
    return TokenAuthorizer(
        registry=registry,
        verifiers=verifiers,
        cache=AuthorizationCache(maxsize=100, ttl_seconds=300),
        timeout_seconds=5.0,
    )


@pytest.fixture
def domains_file() -> Path:
    """Path to the shipped domain registry."""
    return Path(__file__).parent.parent / "config" / "domains.yaml"


# --- Synchronizer fixtures ---


class FakeTime:
    """Wall clock and sleep that only move when the synchronizer waits."""

    def __init__(self, start: datetime = T0):
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep = None

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)
        if self.on_sleep is not None:
            self.on_sleep()


class FakeRangeSource:
    """Edge provider returning whatever the test sets."""

    def __init__(self, ranges: TrustedRangeSet | None = None):
        self.ranges = ranges or RANGES_V1
        self.error: Exception | None = None
        self.calls = 0

    async def fetch(self) -> TrustedRangeSet:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.ranges.model_copy(deep=True)


class FakeStructLogger:
    def __init__(self):
        self.calls = []

    def info(self, **kwargs):
        self.calls.append(("info", kwargs))

    def warning(self, **kwargs):
        self.calls.append(("warning", kwargs))

    def error(self, **kwargs):
        self.calls.append(("error", kwargs))

    def critical(self, **kwargs):
        self.calls.append(("critical", kwargs))

    def events(self, name: str) -> list:
        return [(level, kw) for level, kw in self.calls if kw.get("event") == name]


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def range_source() -> FakeRangeSource:
    return FakeRangeSource()


@pytest.fixture
def store() -> InMemoryTrustStore:
    return InMemoryTrustStore()


@pytest.fixture
def origin_clients() -> dict:
    return {
        OriginKind.OBJECT_STORE: InMemoryPolicyClient(),
        OriginKind.API_LAYER: InMemoryPolicyClient(),
    }


@pytest.fixture
def publisher(origin_clients) -> PolicyPublisher:
    return PolicyPublisher(
        {
            OriginKind.OBJECT_STORE: (
                OriginTarget(kind=OriginKind.OBJECT_STORE, resource_id="harborlist-frontend"),
                origin_clients[OriginKind.OBJECT_STORE],
            ),
            OriginKind.API_LAYER: (
                OriginTarget(
                    kind=OriginKind.API_LAYER,
                    resource_id="a1b2c3d4e5",
                    account_id="123456789012",
                ),
                origin_clients[OriginKind.API_LAYER],
            ),
        },
        step_timeout=5.0,
    )


@pytest.fixture
def audit_sink() -> FakeStructLogger:
    return FakeStructLogger()


@pytest.fixture
def synchronizer(store, range_source, publisher, fake_time, audit_sink) -> OriginTrustSynchronizer:
    return OriginTrustSynchronizer(
        store=store,
        source=range_source,
        publisher=publisher,
        audit=AuditLogger(logger=audit_sink),
        grace_seconds=900,
        lease_ttl_seconds=3600,
        stall_alert_threshold=3,
        owner="test-instance",
        sleep=fake_time.sleep,
        clock=fake_time,
    )


def source_ips(document: dict | None) -> list[str]:
    """Allowed ranges of a rendered policy document."""
    if document is None:
        return []
    value = document["Statement"][0]["Condition"]["IpAddress"]["aws:SourceIp"]
    return value if isinstance(value, list) else [value]


def referers(document: dict | None) -> list[str]:
    """Secrets required by a rendered object-store policy document."""
    if document is None:
        return []
    value = document["Statement"][0]["Condition"].get("StringEquals", {}).get("aws:Referer", [])
    return value if isinstance(value, list) else [value]
