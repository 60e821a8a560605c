"""
Result Cache Package.

Stores which (directory, workspace) pairs were processed and when, so that a
pair is not planned or notified again inside the cache validity window.
"""

from .base import MemoryCache, NoopCache, ResultCache
from .dynamodb import DynamoDBCache

__all__ = [
    "DynamoDBCache",
    "MemoryCache",
    "NoopCache",
    "ResultCache",
]
