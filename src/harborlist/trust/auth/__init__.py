"""Identity domains and token verification."""

from harborlist.trust.auth.context import ContextExtractor, check_claim_schema
from harborlist.trust.auth.domains import DomainRegistry, RegistryError, normalize_path
from harborlist.trust.auth.edge_secret import EdgeSecretGate
from harborlist.trust.auth.errors import (
    ClaimSchemaMismatch,
    EdgeSecretMismatch,
    NoDomainForPath,
    SignatureInvalid,
    TokenExpired,
    TokenMalformed,
    TokenRevoked,
    TokenValidationError,
    VerificationTimeout,
)
from harborlist.trust.auth.jwt import DomainVerifier, JWKSCache, peek_claims

__all__ = [
    "ClaimSchemaMismatch",
    "ContextExtractor",
    "DomainRegistry",
    "DomainVerifier",
    "EdgeSecretGate",
    "EdgeSecretMismatch",
    "JWKSCache",
    "NoDomainForPath",
    "RegistryError",
    "SignatureInvalid",
    "TokenExpired",
    "TokenMalformed",
    "TokenRevoked",
    "TokenValidationError",
    "VerificationTimeout",
    "check_claim_schema",
    "normalize_path",
    "peek_claims",
]
