"""Policy publisher package."""

from harborlist.trust.config import Settings
from harborlist.trust.models import OriginKind

from .clients import (
    ApiGatewayPolicyClient,
    InMemoryPolicyClient,
    PolicyClient,
    S3BucketPolicyClient,
)
from .documents import OriginTarget, canonical, documents_match, render_policy
from .publisher import PolicyPublisher, PublishResult


def build_publisher(settings: Settings) -> PolicyPublisher:
    """Wire a publisher for the configured origins.

    Origins without an identifier fall back to in-memory clients so a local
    run still exercises the full transition.
    """
    origins: dict[OriginKind, tuple[OriginTarget, PolicyClient]] = {}

    bucket = settings.frontend_bucket_name
    origins[OriginKind.OBJECT_STORE] = (
        OriginTarget(
            kind=OriginKind.OBJECT_STORE,
            resource_id=bucket or "local-frontend",
            region=settings.aws_region,
            account_id=settings.aws_account_id,
        ),
        S3BucketPolicyClient(bucket, region_name=settings.aws_region)
        if bucket
        else InMemoryPolicyClient(),
    )

    api_id = settings.rest_api_id
    origins[OriginKind.API_LAYER] = (
        OriginTarget(
            kind=OriginKind.API_LAYER,
            resource_id=api_id or "local-api",
            region=settings.aws_region,
            account_id=settings.aws_account_id,
        ),
        ApiGatewayPolicyClient(
            api_id, region_name=settings.aws_region, stage_name=settings.rest_api_stage
        )
        if api_id
        else InMemoryPolicyClient(),
    )

    return PolicyPublisher(origins, step_timeout=settings.sync_step_timeout_seconds)


__all__ = [
    "ApiGatewayPolicyClient",
    "InMemoryPolicyClient",
    "OriginTarget",
    "PolicyClient",
    "PolicyPublisher",
    "PublishResult",
    "S3BucketPolicyClient",
    "build_publisher",
    "canonical",
    "documents_match",
    "render_policy",
]
