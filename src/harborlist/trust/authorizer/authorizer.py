"""Token authorizer.

Resolves the identity domain from the request path, then validates the
bearer token against that domain's key material only. Every failure is
folded into a deny decision carrying an internal reason code.
"""

import asyncio
import logging
import time
import uuid
from typing import Callable

from harborlist.trust.audit import AuditLogger
from harborlist.trust.audit.metrics import (
    AUTHORIZER_DECISIONS_TOTAL,
    AUTHORIZER_DENIALS_TOTAL,
    AUTHORIZER_LATENCY,
)
from harborlist.trust.auth import (
    ContextExtractor,
    DomainRegistry,
    DomainVerifier,
    EdgeSecretGate,
    JWKSCache,
    NoDomainForPath,
    SignatureInvalid,
    TokenExpired,
    TokenMalformed,
    TokenRevoked,
    TokenValidationError,
    VerificationTimeout,
    peek_claims,
)
from harborlist.trust.authorizer.cache import AuthorizationCache
from harborlist.trust.config import Settings
from harborlist.trust.models import (
    AuthorizationContext,
    AuthorizationDecision,
    AuthorizerRequest,
    DenialReason,
    DomainId,
    IdentityDomain,
)

logger = logging.getLogger(__name__)

# jti -> revoked?
RevocationChecker = Callable[[str], bool]


def extract_bearer(value: str | None) -> str:
    """Return the token from an Authorization value, or raise TokenMalformed."""
    if not value:
        raise TokenMalformed("Missing bearer token")
    parts = value.split()
    if len(parts) == 1:
        # API Gateway TOKEN authorizers may pass the raw token
        return parts[0]
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise TokenMalformed("Invalid authorization header format")
    return parts[1]


class TokenAuthorizer:
    """Dual-domain bearer token authorizer."""

    def __init__(
        self,
        registry: DomainRegistry,
        verifiers: dict[DomainId, DomainVerifier],
        cache: AuthorizationCache | None = None,
        timeout_seconds: float = 0.25,
        edge_secret_gate: EdgeSecretGate | None = None,
        revocation_checker: RevocationChecker | None = None,
        audit: AuditLogger | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the authorizer.

        Args:
            registry: Path prefix to identity domain rules
            verifiers: One verifier per domain, each bound to its own key source
            cache: Allow-decision cache, None disables caching
            timeout_seconds: Hard bound on edge secret check, key fetch and verification
            edge_secret_gate: Require an accepted edge secret when set
            revocation_checker: Callable returning True for revoked token ids
            audit: Audit logger for decisions
            clock: Wall clock, injectable for tests
        """
        missing = set(registry.domain_ids) - set(verifiers)
        if missing:
            raise ValueError(f"No verifier for domains: {sorted(d.value for d in missing)}")
        self._registry = registry
        self._verifiers = verifiers
        self._extractors = {d.domain_id: ContextExtractor(d) for d in registry}
        self._cache = cache
        self._timeout = timeout_seconds
        self._edge_secret_gate = edge_secret_gate
        self._revocation_checker = revocation_checker
        self._audit = audit
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        registry: DomainRegistry,
        settings: Settings,
        edge_secret_gate: EdgeSecretGate | None = None,
        audit: AuditLogger | None = None,
    ) -> "TokenAuthorizer":
        verifiers = {
            domain.domain_id: DomainVerifier(
                domain,
                JWKSCache(
                    jwks_uri=domain.resolved_jwks_uri,
                    ttl_seconds=settings.jwks_cache_ttl_seconds,
                ),
            )
            for domain in registry
        }
        cache = None
        if settings.authorizer_cache_enabled:
            cache = AuthorizationCache(
                maxsize=settings.authorizer_cache_maxsize,
                ttl_seconds=settings.authorizer_cache_ttl_seconds,
            )
        return cls(
            registry=registry,
            verifiers=verifiers,
            cache=cache,
            timeout_seconds=settings.authorizer_timeout_seconds,
            edge_secret_gate=edge_secret_gate if settings.edge_secret_required else None,
            audit=audit,
        )

    @property
    def registry(self) -> DomainRegistry:
        return self._registry

    @property
    def cache(self) -> AuthorizationCache | None:
        return self._cache

    @property
    def edge_secret_header(self) -> str | None:
        """Header carrying the edge secret, None when the check is off."""
        return self._edge_secret_gate.header if self._edge_secret_gate else None

    async def authorize(
        self, request: AuthorizerRequest, request_id: str | None = None
    ) -> AuthorizationDecision:
        """Decide allow or deny for one request.

        Never raises: token problems and dependency failures alike end in a
        deny carrying an internal reason.
        """
        request_id = request_id or str(uuid.uuid4())
        start_time = time.perf_counter()

        domain = self._registry.resolve(request.path)
        domain_id = domain.domain_id if domain else None
        try:
            if domain is None:
                raise NoDomainForPath(request.path)
            try:
                decision = await asyncio.wait_for(
                    self._decide(domain, request), timeout=self._timeout
                )
            except asyncio.TimeoutError as e:
                raise VerificationTimeout() from e
        except TokenValidationError as e:
            logger.debug(
                "Token rejected domain=%s reason=%s detail=%s",
                domain_id.value if domain_id else None,
                e.reason.value,
                e,
            )
            decision = AuthorizationDecision.deny(
                self._classify(e, request.bearer_token, domain), domain_id
            )
        except Exception:
            logger.exception(
                "Authorizer failure domain=%s path=%s",
                domain_id.value if domain_id else None,
                request.path,
            )
            decision = AuthorizationDecision.deny(DenialReason.AUTHORIZER_ERROR, domain_id)

        latency = time.perf_counter() - start_time
        self._record(request_id, request.path, decision, latency)
        return decision

    async def _decide(
        self, domain: IdentityDomain, request: AuthorizerRequest
    ) -> AuthorizationDecision:
        token = extract_bearer(request.bearer_token)

        if self._edge_secret_gate is not None:
            await asyncio.to_thread(self._edge_secret_gate.check, request.source_attributes)

        if self._cache is not None:
            cached = self._cache.get(token, domain.domain_id)
            if cached is not None:
                return cached.model_copy(update={"cached": True})

        context = await asyncio.to_thread(self._verify, domain, token)

        deadline = context.expires_at.timestamp()
        if domain.max_session_seconds is not None:
            deadline = min(deadline, context.issued_at.timestamp() + domain.max_session_seconds)
        ttl = self._cache.ttl_for(deadline, self._clock()) if self._cache else 0
        decision = AuthorizationDecision.allow(context, cache_ttl=ttl)
        if self._cache is not None:
            self._cache.set(token, domain.domain_id, decision)
        return decision

    def _verify(self, domain: IdentityDomain, token: str) -> AuthorizationContext:
        """Signature, expiry, session cap, schema and revocation checks."""
        claims = self._verifiers[domain.domain_id].verify(token)

        if domain.max_session_seconds is not None:
            if self._clock() - int(claims["iat"]) > domain.max_session_seconds:
                raise TokenExpired("Session exceeds maximum duration")

        context = self._extractors[domain.domain_id].extract(claims)

        if self._revocation_checker is not None:
            jti = claims.get("jti")
            if jti and self._revocation_checker(str(jti)):
                raise TokenRevoked()

        return context

    def _classify(
        self,
        error: TokenValidationError,
        raw_token: str | None,
        domain: IdentityDomain | None,
    ) -> DenialReason:
        """Refine a signature failure into a domain mismatch when the token
        names another domain's issuer. Classification only: the token is
        never checked against the other domain's keys."""
        if domain is None or not isinstance(error, SignatureInvalid) or not raw_token:
            return error.reason
        try:
            issuer = peek_claims(extract_bearer(raw_token)).get("iss")
        except TokenMalformed:
            return error.reason
        other = self._registry.domain_for_issuer(issuer if isinstance(issuer, str) else None)
        if other is not None and other.domain_id != domain.domain_id:
            return DenialReason.DOMAIN_MISMATCH
        return error.reason

    def _record(
        self, request_id: str, path: str, decision: AuthorizationDecision, latency: float
    ) -> None:
        domain_label = decision.domain_id.value if decision.domain_id else "none"
        AUTHORIZER_DECISIONS_TOTAL.labels(
            domain=domain_label,
            effect=decision.effect.value,
            cached=str(decision.cached).lower(),
        ).inc()
        AUTHORIZER_LATENCY.labels(domain=domain_label).observe(latency)
        if decision.reason is not None:
            AUTHORIZER_DENIALS_TOTAL.labels(reason=decision.reason.value).inc()

        if self._audit is not None:
            self._audit.log_decision(
                request_id=request_id,
                path=path,
                decision=decision,
                latency_ms=latency * 1000,
            )
