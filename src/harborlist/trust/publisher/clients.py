"""Origin policy clients.

Each client reads and writes the full resource policy of one origin. Calls
are blocking; the publisher runs them in a worker thread.
"""

import json
import logging
import threading
from typing import Any, Protocol

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class PolicyClient(Protocol):
    def get_policy(self) -> dict[str, Any] | None: ...

    def set_policy(self, document: dict[str, Any]) -> None: ...


class S3BucketPolicyClient:
    """Bucket policy of the object-store origin."""

    def __init__(self, bucket: str, region_name: str | None = None, client: Any = None):
        self._bucket = bucket
        self._client = client or boto3.client("s3", region_name=region_name)

    def get_policy(self) -> dict[str, Any] | None:
        try:
            response = self._client.get_bucket_policy(Bucket=self._bucket)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "NoSuchBucketPolicy":
                return None
            raise
        return json.loads(response["Policy"])

    def set_policy(self, document: dict[str, Any]) -> None:
        self._client.put_bucket_policy(Bucket=self._bucket, Policy=json.dumps(document))
        logger.info("Updated bucket policy bucket=%s", self._bucket)


def _decode_api_policy(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        # get_rest_api returns the policy with escaped quotes
        return json.loads(raw.replace('\\"', '"'))


class ApiGatewayPolicyClient:
    """Resource policy of the API-layer origin (REST API)."""

    def __init__(
        self,
        rest_api_id: str,
        region_name: str | None = None,
        stage_name: str | None = None,
        client: Any = None,
    ):
        """Initialize client.

        Args:
            rest_api_id: REST API identifier
            region_name: AWS region
            stage_name: Redeploy this stage after a policy change, when set
            client: Pre-built apigateway client (tests inject a stub)
        """
        self._rest_api_id = rest_api_id
        self._stage_name = stage_name
        self._client = client or boto3.client("apigateway", region_name=region_name)

    def get_policy(self) -> dict[str, Any] | None:
        response = self._client.get_rest_api(restApiId=self._rest_api_id)
        return _decode_api_policy(response.get("policy"))

    def set_policy(self, document: dict[str, Any]) -> None:
        self._client.update_rest_api(
            restApiId=self._rest_api_id,
            patchOperations=[
                {"op": "replace", "path": "/policy", "value": json.dumps(document)},
            ],
        )
        # A resource policy change only takes effect on the next deployment
        if self._stage_name:
            self._client.create_deployment(
                restApiId=self._rest_api_id,
                stageName=self._stage_name,
                description="Edge trust policy update",
            )
        logger.info("Updated REST API policy api=%s", self._rest_api_id)


class InMemoryPolicyClient:
    """Policy client for local runs and tests, with failure injection."""

    def __init__(self, document: dict[str, Any] | None = None):
        self._lock = threading.Lock()
        self._document = document
        self.set_calls: list[dict[str, Any]] = []
        self.fail_sets = 0
        self.fail_gets = 0
        self.fail_always = False
        self.ignore_writes = False

    @property
    def document(self) -> dict[str, Any] | None:
        with self._lock:
            return json.loads(json.dumps(self._document)) if self._document else None

    def get_policy(self) -> dict[str, Any] | None:
        with self._lock:
            if self.fail_gets > 0:
                self.fail_gets -= 1
                raise ConnectionError("policy read failed")
            return json.loads(json.dumps(self._document)) if self._document else None

    def set_policy(self, document: dict[str, Any]) -> None:
        with self._lock:
            self.set_calls.append(document)
            if self.fail_always:
                raise ConnectionError("policy write failed")
            if self.fail_sets > 0:
                self.fail_sets -= 1
                raise ConnectionError("policy write failed")
            if not self.ignore_writes:
                self._document = json.loads(json.dumps(document))
