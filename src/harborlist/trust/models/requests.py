"""API request and response models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .core import AuthorizationContext, Effect, SyncStatus


# --- Authorizer ---


class AuthorizeRequest(BaseModel):
    """Authorizer invocation from the API layer.

    The bearer token travels in the Authorization header.
    """

    path: str = Field(..., description="Request path being authorized")
    source_attributes: dict[str, str] = Field(
        default_factory=dict, description="Edge-supplied request attributes (headers, source IP)"
    )


class AuthorizeResponse(BaseModel):
    """Authorizer result. Carries no denial reason."""

    effect: Effect
    context: AuthorizationContext | None = None
    cache_ttl: int = 0
    request_id: str


# --- Synchronizer ---


class RangeSummary(BaseModel):
    version: int
    ipv4_count: int
    ipv6_count: int
    fetched_at: datetime | None = None
    source: str | None = None


class SyncStatusResponse(BaseModel):
    ranges: RangeSummary | None = None
    secret_version: int = 0
    transition_pending: bool = False
    rotation_pending: bool = False
    status: SyncStatus = Field(default_factory=SyncStatus)
    stalled: bool = False


# --- Health ---


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    version: str
    domains_loaded: bool
    details: dict[str, Any] = Field(default_factory=dict)
