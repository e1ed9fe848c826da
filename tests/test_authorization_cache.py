import time
from datetime import datetime, timezone

from harborlist.trust.authorizer import AuthorizationCache
from harborlist.trust.models import (
    AuthorizationContext,
    AuthorizationDecision,
    DenialReason,
    DomainId,
)


def _allow(ttl: int, domain: DomainId = DomainId.CUSTOMER) -> AuthorizationDecision:
    ctx = AuthorizationContext(
        subject_id="u1",
        domain_id=domain,
        issued_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        expires_at=datetime(2026, 1, 1, 1, tzinfo=timezone.utc),
    )
    return AuthorizationDecision.allow(ctx, cache_ttl=ttl)


def test_key_includes_domain():
    cache = AuthorizationCache(maxsize=10, ttl_seconds=60)
    cache.set("tok", DomainId.CUSTOMER, _allow(30))

    assert cache.get("tok", DomainId.CUSTOMER) is not None
    assert cache.get("tok", DomainId.STAFF) is None


def test_key_does_not_contain_raw_token():
    key = AuthorizationCache.make_key("secret.token.value", DomainId.STAFF)
    assert "secret" not in key
    assert key.endswith(":staff")


def test_denials_and_zero_ttl_not_cached():
    cache = AuthorizationCache(maxsize=10, ttl_seconds=60)
    cache.set("a", DomainId.CUSTOMER, AuthorizationDecision.deny(DenialReason.TOKEN_EXPIRED))
    cache.set("b", DomainId.CUSTOMER, _allow(0))
    assert cache.stats["size"] == 0


def test_ttl_for_is_bounded_by_expiry():
    cache = AuthorizationCache(maxsize=10, ttl_seconds=300)
    assert cache.ttl_for(expires_at=1000.0, now=900.0) == 100
    assert cache.ttl_for(expires_at=5000.0, now=900.0) == 300
    assert cache.ttl_for(expires_at=800.0, now=900.0) == 0


def test_entry_expires_at_its_own_deadline(monkeypatch):
    import harborlist.trust.authorizer.cache as cache_mod

    cache = AuthorizationCache(maxsize=10, ttl_seconds=300)
    cache.set("tok", DomainId.CUSTOMER, _allow(5))
    assert cache.get("tok", DomainId.CUSTOMER) is not None

    later = time.monotonic() + 10
    monkeypatch.setattr(cache_mod.time, "monotonic", lambda: later)
    assert cache.get("tok", DomainId.CUSTOMER) is None


def test_invalidate():
    cache = AuthorizationCache(maxsize=10, ttl_seconds=60)
    cache.set("a", DomainId.CUSTOMER, _allow(30))
    cache.set("b", DomainId.STAFF, _allow(30, DomainId.STAFF))
    assert cache.invalidate() == 2
    assert cache.get("a", DomainId.CUSTOMER) is None


def test_hit_reports_remaining_ttl(monkeypatch):
    import harborlist.trust.authorizer.cache as cache_mod

    start = time.monotonic()
    monkeypatch.setattr(cache_mod.time, "monotonic", lambda: start)
    cache = AuthorizationCache(maxsize=10, ttl_seconds=300)
    cache.set("tok", DomainId.CUSTOMER, _allow(60))

    monkeypatch.setattr(cache_mod.time, "monotonic", lambda: start + 45)
    hit = cache.get("tok", DomainId.CUSTOMER)

    assert hit.cache_ttl == 15
