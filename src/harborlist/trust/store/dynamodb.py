"""DynamoDB-backed trust store.

One item per record, keyed by `pk`. Versioned records keep their version
as a top-level attribute so writes can be guarded with a ConditionExpression;
the record itself is stored as JSON in `payload`.

Table layout:
    pk (S, hash key) | version (N) | payload (S) | owner (S) | expires_at (N)
"""

import logging
from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import ClientError

from harborlist.trust.errors import VersionConflict
from harborlist.trust.models import (
    PendingTransition,
    SecretState,
    SyncStatus,
    TrustedRangeSet,
)
from harborlist.trust.store.base import TrustStore, check_next_version

logger = logging.getLogger(__name__)

RANGES_KEY = "ranges"
PENDING_KEY = "pending"
SECRET_KEY = "secret"
LEASE_KEY = "lease"
STATUS_KEY = "status"


def _is_condition_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoDBTrustStore(TrustStore):
    """Trust store using conditional writes on a single DynamoDB table."""

    def __init__(self, table_name: str, region_name: str | None = None, table: Any = None):
        """Initialize the store.

        Args:
            table_name: DynamoDB table name
            region_name: AWS region, defaults to the boto3 session region
            table: Pre-built Table resource (tests inject a fake here)
        """
        self._table_name = table_name
        self._table = table or boto3.resource("dynamodb", region_name=region_name).Table(
            table_name
        )

    def _get(self, pk: str) -> dict[str, Any] | None:
        response = self._table.get_item(Key={"pk": pk}, ConsistentRead=True)
        return response.get("Item")

    def _versioned_put(self, pk: str, version: int, payload: str, expected: int, what: str) -> None:
        if expected == 0:
            condition = "attribute_not_exists(pk)"
            values: dict[str, Any] = {}
        else:
            condition = "#v = :expected"
            values = {":expected": expected}
        kwargs: dict[str, Any] = {
            "Item": {"pk": pk, "version": version, "payload": payload},
            "ConditionExpression": condition,
        }
        if values:
            kwargs["ExpressionAttributeNames"] = {"#v": "version"}
            kwargs["ExpressionAttributeValues"] = values
        try:
            self._table.put_item(**kwargs)
        except ClientError as e:
            if _is_condition_failure(e):
                item = self._get(pk)
                actual = int(item["version"]) if item else 0
                raise VersionConflict(f"{what} changed", expected=expected, actual=actual) from e
            raise

    # --- Range set ---

    def get_range_set(self) -> TrustedRangeSet | None:
        item = self._get(RANGES_KEY)
        if not item:
            return None
        return TrustedRangeSet.model_validate_json(item["payload"])

    def commit_range_set(self, range_set: TrustedRangeSet, expected_version: int) -> None:
        check_next_version(range_set, expected_version)
        self._versioned_put(
            RANGES_KEY,
            range_set.version,
            range_set.model_dump_json(),
            expected_version,
            "Range set version",
        )
        logger.info("Committed range set version=%s", range_set.version)

    # --- Pending transition ---

    def get_pending_transition(self) -> PendingTransition | None:
        item = self._get(PENDING_KEY)
        if not item:
            return None
        return PendingTransition.model_validate_json(item["payload"])

    def put_pending_transition(self, transition: PendingTransition) -> None:
        self._table.put_item(Item={"pk": PENDING_KEY, "payload": transition.model_dump_json()})

    def clear_pending_transition(self) -> None:
        self._table.delete_item(Key={"pk": PENDING_KEY})

    # --- Secret ---

    def get_secret_state(self) -> SecretState:
        item = self._get(SECRET_KEY)
        if not item:
            return SecretState()
        return SecretState.model_validate_json(item["payload"])

    def put_secret_state(self, state: SecretState, expected_revision: int) -> SecretState:
        stored = state.model_copy(update={"revision": expected_revision + 1})
        self._versioned_put(
            SECRET_KEY,
            stored.revision,
            stored.model_dump_json(),
            expected_revision,
            "Secret state",
        )
        return stored

    # --- Lease ---

    def acquire_lease(self, owner: str, ttl_seconds: int, now: datetime) -> bool:
        now_ts = int(now.timestamp())
        try:
            self._table.put_item(
                Item={"pk": LEASE_KEY, "owner": owner, "expires_at": now_ts + ttl_seconds},
                ConditionExpression="attribute_not_exists(pk) OR #exp < :now OR #o = :owner",
                ExpressionAttributeNames={"#exp": "expires_at", "#o": "owner"},
                ExpressionAttributeValues={":now": now_ts, ":owner": owner},
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise
        return True

    def release_lease(self, owner: str) -> None:
        try:
            self._table.delete_item(
                Key={"pk": LEASE_KEY},
                ConditionExpression="#o = :owner",
                ExpressionAttributeNames={"#o": "owner"},
                ExpressionAttributeValues={":owner": owner},
            )
        except ClientError as e:
            if not _is_condition_failure(e):
                raise
            logger.debug("Lease no longer held owner=%s", owner)

    # --- Status ---

    def get_sync_status(self) -> SyncStatus:
        item = self._get(STATUS_KEY)
        if not item:
            return SyncStatus()
        return SyncStatus.model_validate_json(item["payload"])

    def put_sync_status(self, status: SyncStatus) -> None:
        self._table.put_item(Item={"pk": STATUS_KEY, "payload": status.model_dump_json()})

    def location(self, record: str) -> str:
        return f"dynamodb://{self._table_name}/{record}"
