"""Render origin access policies into AWS resource policy documents."""

import json
from dataclasses import dataclass
from typing import Any

from harborlist.trust.models import OriginAccessPolicy, OriginKind

POLICY_VERSION = "2012-10-17"
ALLOW_SID = "CloudflareOriginAccess"
DENY_INSECURE_SID = "DenyInsecureConnections"


@dataclass(frozen=True)
class OriginTarget:
    """Identifiers needed to render and address one origin's policy."""

    kind: OriginKind
    resource_id: str  # bucket name or REST API id
    region: str = "us-east-1"
    account_id: str = ""

    @property
    def name(self) -> str:
        return self.kind.value


def _secure_transport_false() -> dict[str, Any]:
    return {"Bool": {"aws:SecureTransport": "false"}}


def render_object_store_policy(target: OriginTarget, policy: OriginAccessPolicy) -> dict[str, Any]:
    """S3 bucket policy: ranges via aws:SourceIp, secret via aws:Referer."""
    bucket = target.resource_id
    condition: dict[str, Any] = {"IpAddress": {"aws:SourceIp": list(policy.allowed_ranges)}}
    if policy.required_secrets:
        condition["StringEquals"] = {"aws:Referer": list(policy.required_secrets)}
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Sid": ALLOW_SID,
                "Effect": "Allow",
                "Principal": "*",
                "Action": "s3:GetObject",
                "Resource": f"arn:aws:s3:::{bucket}/*",
                "Condition": condition,
            },
            {
                "Sid": DENY_INSECURE_SID,
                "Effect": "Deny",
                "Principal": "*",
                "Action": "s3:*",
                "Resource": [f"arn:aws:s3:::{bucket}", f"arn:aws:s3:::{bucket}/*"],
                "Condition": _secure_transport_false(),
            },
        ],
    }


def render_api_policy(target: OriginTarget, policy: OriginAccessPolicy) -> dict[str, Any]:
    """API Gateway resource policy.

    Resource policies cannot match request headers, so the edge secret is
    enforced by the authorizer rather than here.
    """
    arn = f"arn:aws:execute-api:{target.region}:{target.account_id}:{target.resource_id}/*"
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Sid": ALLOW_SID,
                "Effect": "Allow",
                "Principal": "*",
                "Action": "execute-api:Invoke",
                "Resource": arn,
                "Condition": {
                    "IpAddress": {"aws:SourceIp": list(policy.allowed_ranges)},
                    "StringEquals": {"aws:RequestedRegion": target.region},
                },
            },
            {
                "Sid": DENY_INSECURE_SID,
                "Effect": "Deny",
                "Principal": "*",
                "Action": "execute-api:Invoke",
                "Resource": arn,
                "Condition": _secure_transport_false(),
            },
        ],
    }


def render_policy(target: OriginTarget, policy: OriginAccessPolicy) -> dict[str, Any]:
    if target.kind != policy.applies_to:
        raise ValueError(f"Policy for {policy.applies_to.value} rendered for {target.kind.value}")
    if target.kind is OriginKind.OBJECT_STORE:
        return render_object_store_policy(target, policy)
    return render_api_policy(target, policy)


def _normalize(value: Any) -> Any:
    """Order-insensitive form: AWS may reorder lists and collapse singletons."""
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        items = [_normalize(v) for v in value]
        if len(items) == 1:
            return items[0]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True))
    return value


def canonical(document: dict[str, Any] | None) -> str | None:
    """Stable string form used to compare rendered and read-back documents."""
    if document is None:
        return None
    return json.dumps(_normalize(document), sort_keys=True, separators=(",", ":"))


def documents_match(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    return canonical(a) == canonical(b)
