"""Secret & range store."""

from harborlist.trust.config import Settings
from harborlist.trust.store.base import TrustStore
from harborlist.trust.store.dynamodb import DynamoDBTrustStore
from harborlist.trust.store.memory import InMemoryTrustStore


def build_store(settings: Settings) -> TrustStore:
    """Create the configured store backend."""
    if settings.store_backend == "dynamodb":
        return DynamoDBTrustStore(settings.store_table_name, region_name=settings.aws_region)
    return InMemoryTrustStore()


__all__ = [
    "DynamoDBTrustStore",
    "InMemoryTrustStore",
    "TrustStore",
    "build_store",
]
