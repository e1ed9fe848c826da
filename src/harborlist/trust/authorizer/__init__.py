"""Token authorizer package."""

from .authorizer import RevocationChecker, TokenAuthorizer, extract_bearer
from .cache import AuthorizationCache

__all__ = [
    "AuthorizationCache",
    "RevocationChecker",
    "TokenAuthorizer",
    "extract_bearer",
]
