"""AWS Lambda entry points.

token_authorizer
    API Gateway Lambda authorizer (TOKEN or REQUEST type). Use the REQUEST
    type when the edge secret check is enabled, since only it forwards
    request headers.

scheduled_sync
    Target of the weekly EventBridge rule and of the CloudFormation custom
    resource that runs the initial setup on deploy.
"""

import asyncio
import json
import logging
import uuid
from functools import lru_cache
from typing import Any

import httpx

from harborlist.trust.audit import AuditLogger
from harborlist.trust.auth import DomainRegistry, EdgeSecretGate
from harborlist.trust.authorizer import TokenAuthorizer
from harborlist.trust.config import settings
from harborlist.trust.logs import configure_logging
from harborlist.trust.models import (
    AuthorizationDecision,
    AuthorizerRequest,
    SyncOutcome,
    SyncReport,
)
from harborlist.trust.publisher import build_publisher
from harborlist.trust.store import TrustStore, build_store
from harborlist.trust.sync import OriginTrustSynchronizer

logger = logging.getLogger(__name__)


@lru_cache
def _store() -> TrustStore:
    return build_store(settings)


@lru_cache
def _audit() -> AuditLogger:
    return AuditLogger(enabled=settings.audit_enabled, log_claims=settings.audit_log_claims)


@lru_cache
def _authorizer() -> TokenAuthorizer:
    configure_logging()
    registry = DomainRegistry.from_yaml(settings.domains_file)
    gate = EdgeSecretGate(
        _store(),
        header=settings.edge_secret_header,
        ttl_seconds=settings.edge_secret_cache_ttl_seconds,
    )
    return TokenAuthorizer.from_settings(registry, settings, edge_secret_gate=gate, audit=_audit())


def _synchronizer() -> OriginTrustSynchronizer:
    configure_logging()
    return OriginTrustSynchronizer.from_settings(
        settings, _store(), build_publisher(settings), audit=_audit()
    )


# ---------------------------------------------------------------------------
# Authorizer
# ---------------------------------------------------------------------------


def path_from_method_arn(method_arn: str) -> str:
    """arn:aws:execute-api:{region}:{account}:{api}/{stage}/{METHOD}/{path...} -> /{path...}"""
    resource = method_arn.split(":", 5)[-1]
    parts = resource.split("/")
    return "/" + "/".join(parts[3:])


def generate_policy(principal_id: str, effect: str, resource: str) -> dict[str, Any]:
    """Generate IAM policy for API Gateway."""
    return {
        "principalId": principal_id,
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Action": "execute-api:Invoke",
                    "Effect": effect,
                    "Resource": resource,
                }
            ],
        },
    }


def _authorizer_context(decision: AuthorizationDecision) -> dict[str, Any]:
    # API Gateway context values must be strings, numbers or booleans
    ctx = decision.context
    if ctx is None:
        return {}
    return {
        "subjectId": ctx.subject_id,
        "domain": ctx.domain_id.value,
        "role": ctx.role or "",
        "groups": ",".join(ctx.groups),
        "permissions": json.dumps(ctx.permissions),
        "email": ctx.email or "",
        "expiresAt": int(ctx.expires_at.timestamp()),
    }


def token_authorizer(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """API Gateway Lambda authorizer."""
    method_arn = event.get("methodArn", "")
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}

    if event.get("type") == "REQUEST":
        token = headers.get("authorization")
        path = event.get("path") or path_from_method_arn(method_arn)
    else:
        token = event.get("authorizationToken")
        path = path_from_method_arn(method_arn)

    request_id = getattr(context, "aws_request_id", None) or str(uuid.uuid4())

    decision = asyncio.run(
        _authorizer().authorize(
            AuthorizerRequest(path=path, bearer_token=token, source_attributes=headers),
            request_id=request_id,
        )
    )

    if not decision.allowed:
        # No reason in the response; it is in the audit log
        return generate_policy("anonymous", "Deny", method_arn)

    response = generate_policy(decision.context.subject_id, "Allow", method_arn)
    response["context"] = _authorizer_context(decision)
    return response


# ---------------------------------------------------------------------------
# Synchronizer
# ---------------------------------------------------------------------------


def _send_cfn_response(
    event: dict[str, Any], context: Any, status: str, data: dict[str, Any]
) -> None:
    """Report a custom resource result back to CloudFormation."""
    log_stream = getattr(context, "log_stream_name", "harborlist-trust")
    body = json.dumps(
        {
            "Status": status,
            "Reason": f"See the details in CloudWatch Log Stream: {log_stream}",
            "PhysicalResourceId": event.get("PhysicalResourceId") or log_stream,
            "StackId": event.get("StackId"),
            "RequestId": event.get("RequestId"),
            "LogicalResourceId": event.get("LogicalResourceId"),
            "Data": data,
        }
    )
    response = httpx.put(event["ResponseURL"], content=body, headers={"content-type": ""})
    logger.info("CloudFormation response status=%s code=%s", status, response.status_code)


def _report_data(report: SyncReport) -> dict[str, Any]:
    return {
        "outcome": report.outcome.value,
        "versionBefore": report.version_before,
        "versionAfter": report.version_after,
        "origins": report.origin_results,
        "error": report.error,
    }


_OK_OUTCOMES = {
    SyncOutcome.UNCHANGED,
    SyncOutcome.APPLIED,
    SyncOutcome.BOOTSTRAPPED,
    SyncOutcome.ROTATED,
    SyncOutcome.DEFERRED,
    SyncOutcome.LEASE_LOST,
}


def scheduled_sync(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Run one synchronizer tick, a bootstrap, or a secret rotation."""
    logger.info("Sync event: %s", json.dumps({k: v for k, v in event.items() if k != "ResponseURL"}))

    is_custom_resource = bool(event.get("RequestType") and event.get("ResponseURL"))
    if is_custom_resource and event["RequestType"] == "Delete":
        _send_cfn_response(event, context, "SUCCESS", {})
        return {"statusCode": 200, "body": json.dumps({"outcome": "skipped"})}

    synchronizer = _synchronizer()
    try:
        if event.get("action") == "rotate-secret":
            report = asyncio.run(synchronizer.rotate_secret())
        elif is_custom_resource:
            report = asyncio.run(synchronizer.bootstrap())
        else:
            report = asyncio.run(synchronizer.run_once())
    except Exception as e:
        logger.exception("Synchronizer run failed")
        if is_custom_resource:
            _send_cfn_response(event, context, "FAILED", {"error": str(e)})
        raise

    data = _report_data(report)
    ok = report.outcome in _OK_OUTCOMES
    if is_custom_resource:
        _send_cfn_response(event, context, "SUCCESS" if ok else "FAILED", data)

    return {"statusCode": 200 if ok else 500, "body": json.dumps(data)}
