"""
DynamoDB-backed result cache.

Items are keyed by the ``CacheKey`` string attribute ("dir#workspace"), so the
table needs a single string partition key with that name.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ...utils import setup_logging
from ..errors import DrifterError
from ..types import CacheEntry, Outcome

logger = setup_logging()

# boto3 does not ship static types for service clients.
DynamoDBClient = Any


def cache_key(dir: str, workspace: str) -> str:
    return f"{dir}#{workspace}"


class DynamoDBCache:
    """Result cache stored in a DynamoDB table."""

    def __init__(
        self,
        table_name: str,
        client: Optional[DynamoDBClient] = None,
        region_name: Optional[str] = None,
    ) -> None:
        self.table_name = table_name
        self.client = client or boto3.client("dynamodb", region_name=region_name)

    def get(self, dir: str, workspace: str) -> Optional[CacheEntry]:
        """
        Reads the entry for a pair.

        Returns:
            The stored entry, or None if there is none or it cannot be decoded

        Raises:
            DrifterError: If the DynamoDB request fails
        """
        try:
            response = self.client.get_item(
                TableName=self.table_name,
                Key={"CacheKey": {"S": cache_key(dir, workspace)}},
                ConsistentRead=True,
            )
        except (BotoCoreError, ClientError) as e:
            raise DrifterError(f"failed to read result cache for {dir}#{workspace}: {e}")

        item = response.get("Item")
        if not item:
            return None
        try:
            return self._decode(item)
        except (KeyError, ValueError) as e:
            logger.warning(f"Ignoring malformed cache item for {dir}#{workspace}: {e}")
            return None

    def put(self, dir: str, workspace: str, entry: CacheEntry) -> None:
        """
        Writes (or overwrites) the entry for a pair.

        Raises:
            DrifterError: If the DynamoDB request fails
        """
        try:
            self.client.put_item(TableName=self.table_name, Item=self._encode(dir, workspace, entry))
        except (BotoCoreError, ClientError) as e:
            raise DrifterError(f"failed to write result cache for {dir}#{workspace}: {e}")

    @staticmethod
    def _encode(dir: str, workspace: str, entry: CacheEntry) -> Dict[str, Dict[str, str]]:
        processed_at = entry.processed_at.astimezone(timezone.utc)
        return {
            "CacheKey": {"S": cache_key(dir, workspace)},
            "Dir": {"S": dir},
            "Workspace": {"S": workspace},
            "ProcessedAt": {"S": processed_at.isoformat()},
            "Outcome": {"S": entry.outcome.value},
        }

    @staticmethod
    def _decode(item: Dict[str, Dict[str, str]]) -> CacheEntry:
        processed_at = datetime.fromisoformat(item["ProcessedAt"]["S"])
        if processed_at.tzinfo is None:
            processed_at = processed_at.replace(tzinfo=timezone.utc)
        return CacheEntry(
            dir=item["Dir"]["S"],
            workspace=item["Workspace"]["S"],
            processed_at=processed_at,
            outcome=Outcome(item["Outcome"]["S"]),
        )
