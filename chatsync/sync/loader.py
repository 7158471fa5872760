"""Record loader: read every session of one user from the session store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chatsync.models import RawSession

if TYPE_CHECKING:
    from chatsync.sources.base import SessionSource

logger = logging.getLogger(__name__)


async def load_user_sessions(source: SessionSource, index_key: str) -> list[RawSession]:
    """Load all sessions referenced by a user's index key, most recent first.

    Sessions whose hash is missing or empty are skipped. Store errors are
    not caught here; the caller owns the per-user failure boundary.

    Args:
        source: Connected session store
        index_key: Per-user index key

    Returns:
        Parsed sessions in the order of the index
    """
    session_keys = await source.read_ordered_ids(index_key)
    if not session_keys:
        return []

    sessions: list[RawSession] = []
    for session_key in session_keys:
        fields = await source.read_record(session_key)
        if not fields:
            logger.debug(f"Skipping empty or missing session {session_key}")
            continue
        sessions.append(RawSession.from_hash(session_key, fields))

    return sessions
