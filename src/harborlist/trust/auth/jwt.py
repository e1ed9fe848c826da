"""JWT validation and JWKS fetching, one verifier per identity domain."""

import logging
import threading
import time
from typing import Any

import jwt
from jwt import PyJWKClient, PyJWKClientError

from harborlist.trust.auth.errors import (
    SignatureInvalid,
    TokenExpired,
    TokenMalformed,
    TokenValidationError,
)
from harborlist.trust.models import IdentityDomain

logger = logging.getLogger(__name__)


class JWKSCache:
    """Thread-safe JWKS cache with automatic refresh."""

    def __init__(self, jwks_uri: str, ttl_seconds: int = 3600, timeout: float = 5.0):
        """Initialize JWKS cache.

        Args:
            jwks_uri: URI to fetch JWKS from
            ttl_seconds: Cache TTL in seconds
            timeout: HTTP timeout for a key set fetch
        """
        self._jwks_uri = jwks_uri
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._client: PyJWKClient | None = None
        self._last_fetch: float = 0
        self._lock = threading.RLock()

    @property
    def jwks_uri(self) -> str:
        return self._jwks_uri

    def get_signing_key(self, token: str) -> Any:
        """Get signing key for token.

        Handles cache refresh and retry on unknown kid.
        """
        with self._lock:
            self._ensure_client()
            try:
                return self._client.get_signing_key_from_jwt(token)  # type: ignore
            except PyJWKClientError as e:
                # Key might have rotated, force refresh
                logger.warning("JWKS key lookup failed, refreshing uri=%s error=%s", self._jwks_uri, e)
                self._refresh()
                return self._client.get_signing_key_from_jwt(token)  # type: ignore

    def _ensure_client(self) -> None:
        """Ensure client exists and is fresh."""
        now = time.time()
        if self._client is None or (now - self._last_fetch) > self._ttl_seconds:
            self._refresh()

    def _refresh(self) -> None:
        """Refresh JWKS client."""
        logger.debug("Refreshing JWKS uri=%s", self._jwks_uri)
        self._client = PyJWKClient(self._jwks_uri, cache_keys=True, timeout=self._timeout)
        self._last_fetch = time.time()


def peek_claims(token: str) -> dict[str, Any]:
    """Decode claims without verifying anything. Never trust the result."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise TokenMalformed(f"Unreadable token: {e}") from e
    if not isinstance(claims, dict):
        raise TokenMalformed("Token payload is not an object")
    return claims


class DomainVerifier:
    """Verifies tokens against a single identity domain's key material."""

    def __init__(self, domain: IdentityDomain, jwks_cache: Any, leeway: int = 0):
        """Initialize verifier.

        Args:
            domain: The identity domain this verifier answers for
            jwks_cache: Key source for that domain only
            leeway: Clock skew tolerance in seconds
        """
        self._domain = domain
        self._jwks_cache = jwks_cache
        self._leeway = leeway

    @property
    def domain(self) -> IdentityDomain:
        return self._domain

    def check_structure(self, token: str) -> dict[str, Any]:
        """Parse the header without trusting it."""
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise TokenMalformed(f"Malformed token header: {e}") from e

        alg = header.get("alg")
        if not alg:
            raise TokenMalformed("Token header has no alg")
        if alg not in self._domain.algorithms:
            raise SignatureInvalid(f"Algorithm {alg} not accepted")
        return header

    def verify(self, token: str) -> dict[str, Any]:
        """Validate JWT against this domain and return claims.

        Raises:
            TokenValidationError: If validation fails
        """
        self.check_structure(token)

        try:
            signing_key = self._jwks_cache.get_signing_key(token)
        except PyJWKClientError as e:
            raise SignatureInvalid(f"No signing key in domain: {e}") from e

        options = {
            "verify_signature": True,
            "verify_exp": True,
            "verify_iat": True,
            "verify_iss": True,
            # Cognito access tokens carry client_id instead of aud
            "verify_aud": False,
            "require": ["exp", "iat", "sub"],
        }

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=self._domain.algorithms,
                issuer=self._domain.issuer,
                options=options,
                leeway=self._leeway,
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired() from e
        except jwt.InvalidIssuerError as e:
            raise SignatureInvalid("Invalid issuer") from e
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            raise SignatureInvalid(str(e)) from e
        except jwt.MissingRequiredClaimError as e:
            raise TokenMalformed(str(e)) from e
        except jwt.InvalidTokenError as e:
            raise TokenMalformed(f"Invalid token: {e}") from e

        self._check_audience(claims)

        logger.debug(
            "JWT validated domain=%s sub=%s", self._domain.domain_id.value, claims.get("sub")
        )
        return claims

    def _check_audience(self, claims: dict[str, Any]) -> None:
        expected = self._domain.audience
        if not expected:
            return
        aud = claims.get("aud", claims.get("client_id"))
        audiences = aud if isinstance(aud, list) else [aud]
        if expected not in audiences:
            raise SignatureInvalid("Invalid audience")


__all__ = [
    "DomainVerifier",
    "JWKSCache",
    "TokenValidationError",
    "peek_claims",
]
