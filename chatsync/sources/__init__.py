"""Session store backends.

Provides two interchangeable backends behind `SessionSource`:
- local: Redis server over the socket protocol (redis-py)
- upstash: Upstash Redis over its REST API (httpx)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from chatsync.errors import ConfigurationError
from chatsync.sources.base import SessionSource, SourceInfo
from chatsync.sources.local import LocalRedisSource
from chatsync.sources.rest import UpstashRestSource

if TYPE_CHECKING:
    from chatsync.config import SyncConfig


def create_source(config: SyncConfig) -> SessionSource:
    """Build the backend selected by configuration.

    Args:
        config: Sync configuration

    Returns:
        Unconnected SessionSource

    Raises:
        ConfigurationError: If Upstash is selected without URL and token

    Examples:
        >>> from chatsync.config import SyncConfig
        >>> create_source(SyncConfig(use_local_redis=True)).info.name
        'local'
    """
    if config.use_local_redis:
        return LocalRedisSource(url=config.local_redis_url, timeout=config.store_timeout_seconds)

    if not config.upstash_redis_rest_url or not config.upstash_redis_rest_token:
        raise ConfigurationError(
            "Upstash Redis configuration missing: set UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN"
        )
    return UpstashRestSource(
        url=config.upstash_redis_rest_url,
        token=config.upstash_redis_rest_token,
        timeout=config.store_timeout_seconds,
        scan_batch_size=config.scan_batch_size,
    )


__all__ = [
    "LocalRedisSource",
    "SessionSource",
    "SourceInfo",
    "UpstashRestSource",
    "create_source",
]
