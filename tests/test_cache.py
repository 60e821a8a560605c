"""
Tests for the result cache backends.
"""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from src.drifter.cache import DynamoDBCache, MemoryCache, NoopCache
from src.drifter.cache.dynamodb import cache_key
from src.drifter.errors import DrifterError
from src.drifter.types import CacheEntry, Outcome

PROCESSED_AT = datetime(2026, 10, 18, 8, 30, tzinfo=timezone.utc)


def client_error(operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
        operation,
    )


class TestCacheEntry(unittest.TestCase):
    """Freshness window."""

    def test_fresh_and_stale(self) -> None:
        entry = CacheEntry("app", "default", PROCESSED_AT, Outcome.NO_DRIFT)
        window = timedelta(hours=24)
        self.assertTrue(entry.is_valid(window, PROCESSED_AT + timedelta(hours=23)))
        self.assertFalse(entry.is_valid(window, PROCESSED_AT + timedelta(hours=24)))


class TestInProcessCaches(unittest.TestCase):
    """Noop and memory caches."""

    def test_noop_always_misses(self) -> None:
        cache = NoopCache()
        cache.put("app", "default", CacheEntry("app", "default", PROCESSED_AT, Outcome.DRIFTED))
        self.assertIsNone(cache.get("app", "default"))

    def test_memory_keys_by_dir_and_workspace(self) -> None:
        cache = MemoryCache()
        entry = CacheEntry("app", "prod", PROCESSED_AT, Outcome.DRIFTED)
        cache.put("app", "prod", entry)
        self.assertEqual(cache.get("app", "prod"), entry)
        self.assertIsNone(cache.get("app", "default"))
        self.assertEqual(len(cache), 1)


class TestDynamoDBCache(unittest.TestCase):
    """DynamoDB item mapping and error handling."""

    def setUp(self) -> None:
        self.client = MagicMock()
        self.cache = DynamoDBCache("drift-cache", client=self.client)

    def test_put_item(self) -> None:
        entry = CacheEntry("infra/app", "prod", PROCESSED_AT, Outcome.DRIFTED)
        self.cache.put("infra/app", "prod", entry)

        self.client.put_item.assert_called_once_with(
            TableName="drift-cache",
            Item={
                "CacheKey": {"S": "infra/app#prod"},
                "Dir": {"S": "infra/app"},
                "Workspace": {"S": "prod"},
                "ProcessedAt": {"S": "2026-10-18T08:30:00+00:00"},
                "Outcome": {"S": "drifted"},
            },
        )

    def test_get_item(self) -> None:
        self.client.get_item.return_value = {
            "Item": {
                "CacheKey": {"S": "infra/app#prod"},
                "Dir": {"S": "infra/app"},
                "Workspace": {"S": "prod"},
                "ProcessedAt": {"S": "2026-10-18T08:30:00+00:00"},
                "Outcome": {"S": "no_drift"},
            }
        }

        entry = self.cache.get("infra/app", "prod")

        self.assertEqual(entry, CacheEntry("infra/app", "prod", PROCESSED_AT, Outcome.NO_DRIFT))
        self.client.get_item.assert_called_once_with(
            TableName="drift-cache",
            Key={"CacheKey": {"S": "infra/app#prod"}},
            ConsistentRead=True,
        )

    def test_missing_item(self) -> None:
        self.client.get_item.return_value = {}
        self.assertIsNone(self.cache.get("infra/app", "prod"))

    def test_malformed_item_is_a_miss(self) -> None:
        self.client.get_item.return_value = {
            "Item": {"CacheKey": {"S": "infra/app#prod"}, "ProcessedAt": {"S": "yesterday"}}
        }
        self.assertIsNone(self.cache.get("infra/app", "prod"))

    def test_read_failure_raises(self) -> None:
        self.client.get_item.side_effect = client_error("GetItem")
        with self.assertRaises(DrifterError) as cm:
            self.cache.get("infra/app", "prod")
        self.assertIn("failed to read result cache for infra/app#prod", str(cm.exception))

    def test_write_failure_raises(self) -> None:
        self.client.put_item.side_effect = client_error("PutItem")
        entry = CacheEntry("infra/app", "prod", PROCESSED_AT, Outcome.NO_DRIFT)
        with self.assertRaises(DrifterError):
            self.cache.put("infra/app", "prod", entry)

    def test_cache_key(self) -> None:
        self.assertEqual(cache_key("a/b", "default"), "a/b#default")

    @patch("src.drifter.cache.dynamodb.boto3.client")
    def test_default_client(self, mock_client: MagicMock) -> None:
        DynamoDBCache("drift-cache", region_name="eu-west-2")
        mock_client.assert_called_once_with("dynamodb", region_name="eu-west-2")


if __name__ == "__main__":
    unittest.main()
