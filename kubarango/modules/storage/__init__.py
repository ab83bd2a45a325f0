"""
Storage Module - Black Box Interface

Purpose: Versioned persistence of deployment spec, status and plan
Interface: StorageModule.connect(), RedisStatusStore.read(), compare_and_swap(), update()
Hidden: Redis specifics, WATCH/MULTI transactions, serialization

Can be replaced with any storage backend that supports compare-and-swap.
"""

import os
from typing import Optional

import redis.asyncio as redis

from .errors import (
    ConflictError,
    NotFoundError,
    OperatorError,
    StoreError,
    is_conflict,
    is_not_found,
)
from .storage import MAX_UPDATE_ATTEMPTS, RedisStatusStore


class StorageModule:
    """Black box storage connection."""

    def __init__(self, connection_url: Optional[str] = None, password: Optional[str] = None):
        """Initialize storage with connection URL."""
        self.url = connection_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.password = password
        self._client = None

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(
                self.url,
                password=self.password,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "StorageModule",
    "RedisStatusStore",
    "MAX_UPDATE_ATTEMPTS",
    "OperatorError",
    "NotFoundError",
    "ConflictError",
    "StoreError",
    "is_not_found",
    "is_conflict",
]
