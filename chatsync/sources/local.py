"""Local Redis backend: RESP socket protocol via redis-py."""

from __future__ import annotations

import logging

import redis.asyncio as redis

from chatsync.errors import SourceError
from chatsync.sources.base import SessionSource, SourceInfo

logger = logging.getLogger(__name__)


class LocalRedisSource(SessionSource):
    """Session store backed by a Redis server reachable over a socket.

    Local Redis supports `KEYS` directly, so enumeration is one call.

    Examples:
        >>> source = LocalRedisSource(url="redis://localhost:6379")
        >>> source.info.native_pattern_listing
        True
    """

    def __init__(self, url: str = "redis://localhost:6379", timeout: float = 30.0) -> None:
        """Initialize local source.

        Args:
            url: Redis connection URL
            timeout: Seconds allowed for a single store call
        """
        super().__init__(timeout=timeout)
        self.url = url
        self._client: redis.Redis | None = None

    def get_source_info(self) -> SourceInfo:
        return SourceInfo(
            name="local",
            description="Local Redis server (socket protocol)",
            protocol="resp",
            native_pattern_listing=True,
        )

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise SourceError("Local Redis source not connected")
        return self._client

    async def connect(self) -> None:
        logger.info(f"Connecting to local Redis: {self.url}")
        self._client = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=self.timeout,
        )
        await self._connect_call(self._client.ping())
        logger.info("Connected to local Redis")

    async def list_index_keys(self, pattern: str) -> list[str]:
        return list(await self._call("keys", self.client.keys(pattern)))

    async def read_ordered_ids(self, index_key: str) -> list[str]:
        return list(await self._call("zrange", self.client.zrange(index_key, 0, -1, desc=True)))

    async def read_record(self, session_key: str) -> dict[str, str]:
        return dict(await self._call("hgetall", self.client.hgetall(session_key)) or {})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Local Redis connection closed")
