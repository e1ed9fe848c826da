"""Tests for the API Gateway authorizer and scheduled sync Lambda handlers."""

import json
from types import SimpleNamespace

import pytest

from harborlist.trust import lambda_handlers
from harborlist.trust.errors import FetchFailed
from harborlist.trust.models import DomainId

METHOD_ARN = "arn:aws:execute-api:us-east-1:123456789012:a1b2c3/prod/GET/api/customer/listings/42"
CONTEXT = SimpleNamespace(aws_request_id="lambda-req-1", log_stream_name="2026/03/01/[$LATEST]abc")


@pytest.fixture
def use_authorizer(monkeypatch, authorizer):
    monkeypatch.setattr(lambda_handlers, "_authorizer", lambda: authorizer)
    return authorizer


@pytest.fixture
def cfn_responses(monkeypatch):
    sent = []

    def fake_put(url, content=None, headers=None):
        sent.append((url, json.loads(content)))
        return SimpleNamespace(status_code=200)

    monkeypatch.setattr(lambda_handlers.httpx, "put", fake_put)
    return sent


def test_path_from_method_arn():
    assert lambda_handlers.path_from_method_arn(METHOD_ARN) == "/api/customer/listings/42"
    assert lambda_handlers.path_from_method_arn(
        "arn:aws:execute-api:us-east-1:123456789012:a1b2c3/prod/POST/"
    ) == "/"


class TestTokenAuthorizer:
    def test_token_event_allow(self, use_authorizer, make_token):
        event = {
            "type": "TOKEN",
            "authorizationToken": f"Bearer {make_token(DomainId.CUSTOMER)}",
            "methodArn": METHOD_ARN,
        }
        response = lambda_handlers.token_authorizer(event, CONTEXT)

        assert response["principalId"] == "cust-0001"
        statement = response["policyDocument"]["Statement"][0]
        assert statement == {
            "Action": "execute-api:Invoke",
            "Effect": "Allow",
            "Resource": METHOD_ARN,
        }
        ctx = response["context"]
        assert ctx["domain"] == "customer"
        assert ctx["role"] == "dealer"
        assert json.loads(ctx["permissions"]) == ["view_listings", "create_listing", "manage_inventory"]
        assert all(isinstance(v, (str, int)) for v in ctx.values())

    def test_token_event_cross_domain_denied(self, use_authorizer, make_token):
        event = {
            "type": "TOKEN",
            "authorizationToken": f"Bearer {make_token(DomainId.STAFF)}",
            "methodArn": METHOD_ARN,
        }
        response = lambda_handlers.token_authorizer(event, CONTEXT)

        assert response["principalId"] == "anonymous"
        assert response["policyDocument"]["Statement"][0]["Effect"] == "Deny"
        assert "context" not in response

    def test_request_event_uses_headers_and_path(self, use_authorizer, make_token):
        event = {
            "type": "REQUEST",
            "methodArn": "arn:aws:execute-api:us-east-1:123456789012:a1b2c3/prod/GET/api/admin/users",
            "path": "/api/admin/users",
            "headers": {"Authorization": f"Bearer {make_token(DomainId.STAFF)}"},
        }
        response = lambda_handlers.token_authorizer(event, CONTEXT)

        assert response["policyDocument"]["Statement"][0]["Effect"] == "Allow"
        assert response["context"]["domain"] == "staff"
        assert response["context"]["groups"] == "admin"


class TestScheduledSync:
    def test_scheduled_tick(self, monkeypatch, synchronizer, store):
        monkeypatch.setattr(lambda_handlers, "_synchronizer", lambda: synchronizer)

        result = lambda_handlers.scheduled_sync({"source": "aws.events"}, CONTEXT)

        assert result["statusCode"] == 200
        assert json.loads(result["body"])["outcome"] == "bootstrapped"
        assert store.get_range_set().version == 1

    def test_rotate_action(self, monkeypatch, synchronizer, store):
        monkeypatch.setattr(lambda_handlers, "_synchronizer", lambda: synchronizer)
        lambda_handlers.scheduled_sync({}, CONTEXT)

        result = lambda_handlers.scheduled_sync({"action": "rotate-secret"}, CONTEXT)

        assert json.loads(result["body"])["outcome"] == "rotated"
        assert store.get_secret_state().version == 2

    def test_custom_resource_create_bootstraps(self, monkeypatch, synchronizer, cfn_responses):
        monkeypatch.setattr(lambda_handlers, "_synchronizer", lambda: synchronizer)
        event = {
            "RequestType": "Create",
            "ResponseURL": "https://cloudformation-response.test/signed",
            "StackId": "stack-1",
            "RequestId": "cfn-req-1",
            "LogicalResourceId": "EdgeTrustSetup",
        }

        result = lambda_handlers.scheduled_sync(event, CONTEXT)

        assert result["statusCode"] == 200
        [(url, body)] = cfn_responses
        assert url == event["ResponseURL"]
        assert body["Status"] == "SUCCESS"
        assert body["RequestId"] == "cfn-req-1"
        assert body["Data"]["outcome"] == "bootstrapped"

    def test_custom_resource_delete_skips_sync(self, monkeypatch, cfn_responses):
        def boom():
            raise AssertionError("synchronizer must not run on delete")

        monkeypatch.setattr(lambda_handlers, "_synchronizer", boom)
        event = {"RequestType": "Delete", "ResponseURL": "https://cfn.test/x"}

        result = lambda_handlers.scheduled_sync(event, CONTEXT)

        assert json.loads(result["body"])["outcome"] == "skipped"
        assert cfn_responses[0][1]["Status"] == "SUCCESS"

    def test_custom_resource_failure_reported(self, monkeypatch, cfn_responses):
        class Broken:
            async def bootstrap(self):
                raise RuntimeError("table missing")

        monkeypatch.setattr(lambda_handlers, "_synchronizer", lambda: Broken())
        event = {"RequestType": "Create", "ResponseURL": "https://cfn.test/x"}

        with pytest.raises(RuntimeError):
            lambda_handlers.scheduled_sync(event, CONTEXT)
        assert cfn_responses[0][1]["Status"] == "FAILED"
        assert cfn_responses[0][1]["Data"]["error"] == "table missing"

    def test_failed_run_returns_500(self, monkeypatch, synchronizer, range_source):
        range_source.error = FetchFailed("edge provider down")
        monkeypatch.setattr(lambda_handlers, "_synchronizer", lambda: synchronizer)

        result = lambda_handlers.scheduled_sync({}, CONTEXT)
        assert result["statusCode"] == 500
        assert json.loads(result["body"])["error"] == "edge provider down"
