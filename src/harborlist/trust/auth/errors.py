"""Typed token validation failures."""

from harborlist.trust.models import DenialReason


class TokenValidationError(Exception):
    """Token validation error carrying an internal denial reason."""

    def __init__(self, reason: DenialReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason


class NoDomainForPath(TokenValidationError):
    def __init__(self, path: str):
        super().__init__(DenialReason.NO_DOMAIN_FOR_PATH, f"No identity domain for path {path}")
        self.path = path


class TokenMalformed(TokenValidationError):
    def __init__(self, message: str = "Malformed token"):
        super().__init__(DenialReason.TOKEN_MALFORMED, message)


class SignatureInvalid(TokenValidationError):
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(DenialReason.SIGNATURE_INVALID, message)


class TokenExpired(TokenValidationError):
    def __init__(self, message: str = "Token has expired"):
        super().__init__(DenialReason.TOKEN_EXPIRED, message)


class ClaimSchemaMismatch(TokenValidationError):
    def __init__(self, message: str = "Claim schema mismatch"):
        super().__init__(DenialReason.CLAIM_SCHEMA_MISMATCH, message)


class TokenRevoked(TokenValidationError):
    def __init__(self, message: str = "Token has been revoked"):
        super().__init__(DenialReason.TOKEN_REVOKED, message)


class VerificationTimeout(TokenValidationError):
    def __init__(self, message: str = "Verification timed out"):
        super().__init__(DenialReason.VERIFICATION_TIMEOUT, message)


class EdgeSecretMismatch(TokenValidationError):
    def __init__(self, message: str = "Edge secret missing or not accepted"):
        super().__init__(DenialReason.EDGE_SECRET_MISMATCH, message)
