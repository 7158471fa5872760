"""Key discovery: find every per-user chat index key."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chatsync.errors import SourceError

if TYPE_CHECKING:
    from chatsync.sources.base import SessionSource

logger = logging.getLogger(__name__)


def index_key_pattern(chat_version: str) -> str:
    """Glob pattern of the per-user index keys for a chat version."""
    return f"user:{chat_version}:chat:*"


def user_id_from_index_key(index_key: str) -> str:
    """Extract the user id from a key like `user:v2:chat:<userId>`."""
    return index_key.rsplit(":", 1)[-1]


async def discover_user_index_keys(source: SessionSource, chat_version: str = "v2") -> list[str]:
    """Enumerate per-user index keys.

    Discovery failure never aborts a pass: errors are logged and an empty
    list is returned.

    Args:
        source: Connected session store
        chat_version: Version tag of the chat index keys

    Returns:
        Index keys in enumeration order
    """
    pattern = index_key_pattern(chat_version)
    try:
        keys = await source.list_index_keys(pattern)
    except SourceError as e:
        logger.error(f"Failed to list user chat index keys ({pattern}): {e}")
        return []

    logger.debug(f"Discovered {len(keys)} index keys matching {pattern}")
    return keys
