"""
Storage Module - Black Box Interface

Purpose: Abstract strategy and intent persistence
Interface: Repository protocol, RedisRepository, StorageModule.connect()/disconnect()
Hidden: Redis specifics, key layout, serialization

Can be replaced with any storage backend that offers an atomic multi-document insert.
"""

from typing import Optional

import redis.asyncio as redis

from ...config.provider import RedisConfig
from .interfaces import Repository
from .repository import RedisRepository


class StorageModule:
    """Black box storage connection."""

    def __init__(self, config: RedisConfig):
        """Initialize storage with Redis configuration."""
        self.config = config
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(
                self.config.url,
                password=self.config.password,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = ["StorageModule", "Repository", "RedisRepository"]
